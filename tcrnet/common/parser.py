import warnings

import pandas as pd

from tcrnet.common.clonotype import ClonotypeAA, ClonotypeNT

REQUIRED_COLUMNS = ('count', 'freq', 'cdr3nt', 'cdr3aa', 'v', 'j')


class MissingColumnsError(ValueError):
    """
    Raised when a clonotype table lacks some of the columns required for the analysis
    """
    def __init__(self, missing: list[str], columns: list[str]):
        self.missing = missing
        super().__init__(f'Critical columns {missing} missing in table with columns {columns}')


def check_columns(df: pd.DataFrame, required=REQUIRED_COLUMNS):
    """
    checks that the table has all the required columns
    :param df: the table to check
    :param required: the list of column names to be present
    :raises MissingColumnsError: if some of the columns are absent
    """
    missing = [x for x in required if x not in df.columns]
    if missing:
        raise MissingColumnsError(missing, list(df.columns))


class SegmentParser:
    """
    A parser which normalizes V/D/J gene calls
    """
    def __init__(self,
                 select_most_probable: bool = True,
                 remove_allele: bool = True) -> None:
        """
        :param select_most_probable: whether to select the first (most probable) segment out of a list of calls
        :param remove_allele: whether to remove the allele from a segment name or not
        """
        self.select_most_probable = select_most_probable
        self.remove_allele = remove_allele

    def parse(self, id: str) -> str | None:
        """
        normalizes the segment name
        :param id: the name of a segment. if the name cannot be parsed would return None
        :return: a normalized segment name or None
        """
        if id is None or pd.isna(id):
            return None
        id = str(id).strip()
        if id in ('', '.'):
            return None
        if self.select_most_probable:
            id = id.split(',')[0].strip()
        if self.remove_allele:
            id = id.split('*', 1)[0]
        return id


class ClonotypeTableParser:
    """
    The object which parses clonotype tables with `count, freq, cdr3nt, cdr3aa, v, j` and optional `d` columns.
    Creates a list of clonotypes
    """
    def __init__(self,
                 segment_parser: SegmentParser = None,
                 sep='\t') -> None:
        self.segment_parser = segment_parser if segment_parser is not None else SegmentParser()
        self.sep = sep

    def read_table(self, path: str, n: int = None) -> pd.DataFrame:
        return pd.read_csv(path, sep=self.sep, nrows=n)

    def parse(self, source: str | pd.DataFrame, n: int = None, sample: bool = False) -> list[ClonotypeAA]:
        """
        Parses the dataset.
        :param source: Should be either a `pd.DataFrame` or a string with filename
        :param n: either None or number of rows to parse
        :param sample: whether the rows should be randomly sampled (with a fixed seed) instead of taking the first `n`
        :return: a list of clonotypes in a file
        """
        if isinstance(source, str):
            if n is None or not sample:
                source = self.read_table(source, n)
            else:
                source = self.read_table(source).sample(n=n, random_state=42)
        elif n is not None:
            if not sample:
                source = source.head(n)
            else:
                source = source.sample(n=n, random_state=42)
        check_columns(source)
        return self.parse_inner(source)

    def parse_inner(self, source: pd.DataFrame) -> list[ClonotypeAA]:
        """
        Reads clonotypes from a validated table. Rows without both amino acid and nucleotide sequences are dropped.
        :param source: the dataframe to perform the parsing on
        :return: list of clonotypes
        """
        if 'd' in source.columns:
            def get_d(r):
                return self.segment_parser.parse(r['d'])
        else:
            def get_d(_):
                return None

        res = []
        dropped = 0
        for index, row in source.iterrows():
            has_aa = not pd.isna(row['cdr3aa']) and row['cdr3aa'] != ''
            has_nt = not pd.isna(row['cdr3nt']) and row['cdr3nt'] != ''
            if not has_aa and not has_nt:
                dropped += 1
                continue
            freq = None if pd.isna(row['freq']) else float(row['freq'])
            kwargs = dict(cdr3aa=row['cdr3aa'] if has_aa else None,
                          v=self.segment_parser.parse(row['v']),
                          d=get_d(row),
                          j=self.segment_parser.parse(row['j']),
                          id=index,
                          cells=int(row['count']),
                          freq=freq)
            if has_nt:
                res.append(ClonotypeNT(cdr3nt=row['cdr3nt'], **kwargs))
            else:
                res.append(ClonotypeAA(**kwargs))
        if dropped:
            warnings.warn(f'Dropped {dropped} rows without CDR3 sequence')
        return res


class VDJtoolsParser(ClonotypeTableParser):
    """
    A parser to process the result of VDJtools. It is one of the most common formats which includes the following \
    columns: `count, freq, cdr3nt, cdr3aa, v, d, j` and, optionally, `VEnd, DStart, DEnd, JStart`. VDJtools tables \
    sometimes come with a `#count` header, it is renamed to `count`.
    """
    def __init__(self,
                 segment_parser: SegmentParser = None,
                 sep='\t') -> None:
        super().__init__(segment_parser, sep)

    def read_table(self, path: str, n: int = None) -> pd.DataFrame:
        return pd.read_csv(path, sep=self.sep, nrows=n).rename(columns={'#count': 'count'})
