import os
import subprocess
import tempfile
from datetime import datetime

import pandas as pd

from tcrnet.annotation.resolver import AnnotationCandidate
from tcrnet.common.repertoire import Repertoire


class AnnotationMatcherError(RuntimeError):
    """
    Raised when the external annotation matcher fails or returns something that can not be read
    """
    pass


class MalformedAnnotationError(AnnotationMatcherError):
    pass


def load_annotation_candidates(df: pd.DataFrame,
                               cdr3_column: str = 'cdr3aa',
                               label_column: str = 'antigen.epitope',
                               score_column: str = 'score',
                               reference_column: str = 'reference.id',
                               reference_sep: str = ',') -> list[AnnotationCandidate]:
    """
    converts the table of matches into a list of `AnnotationCandidate`
    :param df: the table with a row per (sequence, label) match
    :param cdr3_column: the column with the matched sample sequence
    :param label_column: the column with the functional label (e.g. epitope)
    :param score_column: the column with the match confidence score
    :param reference_column: the column with evidence reference ids separated with `reference_sep`
    :param reference_sep: the separator of reference ids
    :return: the list of candidates
    """
    missing = [x for x in (cdr3_column, label_column, score_column, reference_column) if x not in df.columns]
    if missing:
        raise MalformedAnnotationError(f'Columns {missing} missing in annotation table with columns '
                                       f'{list(df.columns)}')
    res = []
    for _, row in df.iterrows():
        if pd.isna(row[cdr3_column]) or pd.isna(row[label_column]):
            continue
        if pd.isna(row[reference_column]):
            references = ()
        else:
            references = tuple(x.strip() for x in str(row[reference_column]).split(reference_sep) if x.strip())
        try:
            score = 0.0 if pd.isna(row[score_column]) else float(row[score_column])
        except (TypeError, ValueError) as e:
            raise MalformedAnnotationError(f'Bad score {row[score_column]!r} for {row[cdr3_column]}') from e
        res.append(AnnotationCandidate(cdr3aa=row[cdr3_column],
                                       label=row[label_column],
                                       score=score,
                                       references=references))
    return res


class ExternalAnnotationMatcher:
    """
    Runs an external tool (e.g. VDJmatch) which matches a repertoire against a database of annotated sequences.
    The command is a list of arguments where `{input}` is replaced with the path of the repertoire table written \
    by the matcher and `{output}` with the path the tool should write its matches to.
    """
    def __init__(self,
                 command: list[str],
                 sep: str = '\t',
                 cdr3_column: str = 'cdr3aa',
                 label_column: str = 'antigen.epitope',
                 score_column: str = 'score',
                 reference_column: str = 'reference.id',
                 reference_sep: str = ','):
        self.command = command
        self.sep = sep
        self.columns = dict(cdr3_column=cdr3_column,
                            label_column=label_column,
                            score_column=score_column,
                            reference_column=reference_column,
                            reference_sep=reference_sep)

    def match(self, repertoire: Repertoire) -> list[AnnotationCandidate]:
        """
        :param repertoire: the repertoire to annotate
        :return: the annotation candidates for the repertoire sequences
        :raises AnnotationMatcherError: if the tool can not be run, exits with non-zero status or \
        its output can not be read
        """
        with tempfile.TemporaryDirectory() as tmp:
            input_path = os.path.join(tmp, 'input.txt')
            output_path = os.path.join(tmp, 'output.txt')
            repertoire.serialize().to_csv(input_path, sep='\t', index=False)
            cmd = [x.replace('{input}', input_path).replace('{output}', output_path) for x in self.command]
            print(f'[{datetime.now()}]: running {cmd[0]} for {repertoire.sample_id}')
            try:
                subprocess.run(cmd, check=True, capture_output=True, text=True)
            except FileNotFoundError as e:
                raise AnnotationMatcherError(f'Annotation matcher {cmd[0]} not found') from e
            except subprocess.CalledProcessError as e:
                raise AnnotationMatcherError(
                    f'Annotation matcher exited with status {e.returncode}: {e.stderr}') from e
            try:
                df = pd.read_csv(output_path, sep=self.sep)
            except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
                raise MalformedAnnotationError(f'Can not read annotation matcher output: {e}') from e
        return load_annotation_candidates(df, **self.columns)

    def __call__(self, repertoire: Repertoire) -> list[AnnotationCandidate]:
        return self.match(repertoire)
