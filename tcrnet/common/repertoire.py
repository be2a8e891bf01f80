from collections import defaultdict
from copy import copy
from functools import cached_property

import pandas as pd

from tcrnet.common.clonotype import ClonotypeAA
from tcrnet.common.parser import ClonotypeTableParser

ROLES = ('test', 'background')


class Repertoire:
    """
    The main object in the library is `Repertoire`. It stores the clonotypes of a single sample, either a test \
    sample or a background (control) one, in a normalized form: the clonotypes are aggregated by amino acid CDR3 \
    sequence, so that each `cdr3aa` is met only once. Counts and frequencies of redundant records are summed, \
    the gene calls of the most abundant record are kept.
    """

    def __init__(self,
                 clonotypes: list[ClonotypeAA],
                 sample_id: str = None,
                 role: str = 'test',
                 metadata: dict[str, str] | pd.Series = None):
        """
        :param clonotypes: the list of clonotypes, can contain redundant records
        :param sample_id: the sample identifier
        :param role: `test` or `background`
        :param metadata: any sample metadata
        """
        if role not in ROLES:
            raise ValueError(f'Repertoire role should be one of {ROLES}, got {role}')
        self.sample_id = sample_id
        self.role = role
        self.metadata = metadata if metadata is not None else {}
        self.clonotypes = Repertoire.aggregate(clonotypes)
        self.__by_cdr3aa = {x.cdr3aa: x for x in self.clonotypes}
        self.number_of_clones = len(self.clonotypes)
        self.number_of_reads = sum(x.size() for x in self.clonotypes)

    @staticmethod
    def aggregate(clonotypes: list[ClonotypeAA]) -> list[ClonotypeAA]:
        """
        aggregates redundant clonotypes by cdr3aa; the result is sorted by size (descending) and then by cdr3aa
        :param clonotypes: the list of clonotypes
        :return: the list of unique clonotypes
        """
        groups = defaultdict(list)
        for clonotype in clonotypes:
            groups[clonotype.cdr3aa].append(clonotype)

        total = sum(x.size() for x in clonotypes)
        # a single missing frequency makes all of them recomputed from counts
        use_given = all(x.freq is not None for x in clonotypes)
        res = []
        for cdr3aa, group in groups.items():
            # max() keeps the first of equally abundant records
            best = copy(max(group, key=lambda x: x.size()))
            best.cells = sum(x.size() for x in group)
            if use_given:
                best.freq = sum(x.freq for x in group)
            else:
                best.freq = best.cells / total if total else 0.0
            res.append(best)
        res.sort(key=lambda x: (-x.size(), x.cdr3aa))
        return res

    @classmethod
    def load(cls,
             parser: ClonotypeTableParser,
             path: str,
             sample_id: str = None,
             role: str = 'test',
             metadata: dict[str, str] | pd.Series = None,
             n: int = None,
             sample: bool = False):
        """
        reads a repertoire from a file
        :param parser: the parser which would parse the initial file and create the clonotype list
        :param path: the path to a file that we should parse
        :param sample_id: the sample identifier, the file path is used if not given
        :param role: `test` or `background`
        :param metadata: sample metadata
        :param n: number of rows to parse or None (parse everything)
        :param sample: whether to sample random rows from the initial file rows or not
        """
        metadata = dict(metadata) if metadata is not None else {}
        metadata['path'] = path
        return cls(clonotypes=parser.parse(path, n=n, sample=sample),
                   sample_id=sample_id if sample_id is not None else path,
                   role=role,
                   metadata=metadata)

    @classmethod
    def load_from_df(cls,
                     df: pd.DataFrame,
                     sample_id: str = None,
                     role: str = 'test',
                     parser: ClonotypeTableParser = None,
                     metadata: dict[str, str] | pd.Series = None):
        if parser is None:
            parser = ClonotypeTableParser()
        return cls(clonotypes=parser.parse(df), sample_id=sample_id, role=role, metadata=metadata)

    @classmethod
    def split_by_sample(cls,
                        df: pd.DataFrame,
                        sample_column: str = 'sample_id',
                        role: str = 'test',
                        parser: ClonotypeTableParser = None) -> list:
        """
        creates a repertoire per sample from a single table which stores several samples
        :param df: the table with `sample_column` and the clonotype table columns
        :param sample_column: the name of the column with sample identifiers
        :param role: the role of all the created repertoires
        :param parser: the parser to use
        :return: a list of repertoires ordered as samples first appear in the table
        """
        if sample_column not in df.columns:
            raise ValueError(f"'{sample_column}' column missing in table")
        return [cls.load_from_df(df[df[sample_column] == sample_id].drop(columns=[sample_column]),
                                 sample_id=sample_id,
                                 role=role,
                                 parser=parser)
                for sample_id in df[sample_column].drop_duplicates()]

    @property
    def sequences(self) -> list[str]:
        """
        the sorted list of amino acid sequences
        """
        return sorted(self.__by_cdr3aa)

    def get(self, cdr3aa: str) -> ClonotypeAA | None:
        return self.__by_cdr3aa.get(cdr3aa)

    def top(self, n: int = 100):
        """
        Get `n` top used clonotypes in a repertoire
        :param n: number of clonotypes
        :return: a new `Repertoire` with the top clonotypes (ties broken by cdr3aa)
        """
        return Repertoire(self.clonotypes[0:n], sample_id=self.sample_id, role=self.role, metadata=self.metadata)

    @cached_property
    def vj_groups(self) -> dict[tuple[str, str], set[str]]:
        """
        the mapping of a (V, J) gene pair to the set of cdr3aa using it
        """
        groups = defaultdict(set)
        for clonotype in self.clonotypes:
            groups[clonotype.vj].add(clonotype.cdr3aa)
        return dict(groups)

    @property
    def total(self):
        """
        returns the total size of all the clonotypes (number of reads/number of cells)
        """
        return self.number_of_reads

    def serialize(self) -> pd.DataFrame:
        """
        Returns a clonotype table (`count, freq, cdr3nt, cdr3aa, v, d, j`) with a row per clonotype
        """
        return pd.DataFrame([x.serialize() for x in self.clonotypes],
                            columns=['count', 'freq', 'cdr3nt', 'cdr3aa', 'v', 'd', 'j'])

    def __contains__(self, cdr3aa):
        return cdr3aa in self.__by_cdr3aa

    def __getitem__(self, idx):
        return self.clonotypes[idx]

    def __len__(self):
        return len(self.clonotypes)

    def __str__(self):
        return f'{self.role} repertoire {self.sample_id} of {self.__len__()} clonotypes and {self.total} cells:\n' + \
            '\n'.join([str(x) for x in self.clonotypes[0:5]]) + '\n...'

    def __repr__(self):
        return self.__str__()

    def __iter__(self):
        return iter(self.clonotypes)
