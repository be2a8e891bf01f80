import re
import typing as t
from collections import defaultdict, namedtuple

import pandas as pd

AnnotationCandidate = namedtuple('AnnotationCandidate', 'cdr3aa label score references')

_PRIMARY_REFERENCE = re.compile(r'^(pmid:\s*\d+|\d+|(doi:\s*)?10\.\d{4,}/\S+)$', re.IGNORECASE)


def is_publication(reference: str) -> bool:
    """
    whether the reference id is a primary publication (PubMed id or DOI) rather than a database \
    cross-reference, a URL or a submitter name
    """
    if reference is None or pd.isna(reference):
        return False
    return _PRIMARY_REFERENCE.match(str(reference).strip()) is not None


class AnnotationResolver:
    """
    Selects a single functional annotation per sequence out of the candidates reported by an annotation matcher.
    For each sequence the candidates with the highest score are kept, then the ones with the largest number of \
    primary publications. If more than one label remains the sequence is ambiguous and is resolved to None.
    """
    def __init__(self, is_primary_reference: t.Callable[[str], bool] = None):
        """
        :param is_primary_reference: the predicate telling whether a reference id should be counted as evidence
        """
        self.is_primary_reference = is_primary_reference if is_primary_reference is not None else is_publication

    def evidence_count(self, candidate: AnnotationCandidate) -> int:
        return len({x for x in candidate.references if self.is_primary_reference(x)})

    def resolve_sequence(self, candidates: list[AnnotationCandidate]) -> AnnotationCandidate | None:
        best_score = max(x.score for x in candidates)
        candidates = [x for x in candidates if x.score == best_score]
        evidence = [self.evidence_count(x) for x in candidates]
        candidates = [x for x, n in zip(candidates, evidence) if n == max(evidence)]
        if len({x.label for x in candidates}) > 1:
            return None
        return candidates[0]

    def resolve(self, candidates: t.Iterable[AnnotationCandidate]) -> dict[str, AnnotationCandidate | None]:
        """
        :param candidates: the annotation candidates, several per sequence are allowed
        :return: the mapping of a sequence to its annotation or None for ambiguous sequences
        """
        by_sequence = defaultdict(list)
        for candidate in candidates:
            by_sequence[candidate.cdr3aa].append(candidate)
        return {cdr3aa: self.resolve_sequence(group) for cdr3aa, group in by_sequence.items()}

    @staticmethod
    def labels(resolved: dict[str, AnnotationCandidate | None]) -> dict[str, str]:
        """
        :return: the mapping of a sequence to its label, ambiguous sequences are left out
        """
        return {cdr3aa: x.label for cdr3aa, x in resolved.items() if x is not None}
