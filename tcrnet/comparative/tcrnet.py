from collections import defaultdict, namedtuple
from datetime import datetime

import numpy as np
import pandas as pd
from scipy.stats import fisher_exact
from statsmodels.stats.multitest import multipletests

from tcrnet.common.repertoire import Repertoire
from tcrnet.distances.graph import DistanceGraphBuilder, Edge

GROUP_BY = ('none', 'vj')

DegreeStat = namedtuple(
    'DegreeStat', 'sample_id cdr3aa v j count freq degree_s degree_c group_count_s group_count_c p_value p_adj fold')

DEGREE_STAT_COLUMNS = {'sample_id': 'sample_id',
                       'cdr3aa': 'cdr3aa',
                       'v': 'v',
                       'j': 'j',
                       'count': 'count',
                       'freq': 'freq',
                       'degree_s': 'degree.s',
                       'degree_c': 'degree.c',
                       'group_count_s': 'group.count.s',
                       'group_count_c': 'group.count.c',
                       'p_value': 'p.value',
                       'p_adj': 'p.adj',
                       'fold': 'fold'}


def adjust_p_values(p_values) -> np.ndarray:
    """
    Benjamini-Hochberg adjustment; NaN p-values are left out of the correction set and stay NaN
    :param p_values: the list of raw p-values
    :return: an array of adjusted p-values
    """
    p_values = np.asarray(p_values, dtype=float)
    p_adj = np.full(len(p_values), np.nan)
    valid = ~np.isnan(p_values)
    if valid.any():
        p_adj[valid] = multipletests(p_values[valid], method='fdr_bh')[1]
    return p_adj


def get_p_value(degree_s: int, group_count_s: int, degree_c: int, group_count_c: int) -> float:
    """
    One-sided Fisher exact test of the sample neighbor share being greater than the background one
    :return: the p-value or NaN if any of the groups is empty
    """
    if group_count_s <= 0 or group_count_c <= 0:
        return np.nan
    return fisher_exact([[degree_s, group_count_s - degree_s],
                         [degree_c, group_count_c - degree_c]],
                        alternative='greater')[1]


def get_fold(degree_s: int, group_count_s: int, degree_c: int, group_count_c: int) -> float:
    if group_count_s <= 0 or group_count_c <= 0:
        return np.nan
    return ((degree_s + 1) / group_count_s) / ((degree_c + 1) / group_count_c)


class TcrNet:
    """
    The neighborhood enrichment test (TCRNET). For every clonotype of a sample which is met more than once \
    the number of its neighbors (sequences at the given number of substitutions) is counted in the sample and in \
    the background repertoire. The neighbor share in the sample is compared to the one in the background with the \
    one-sided Fisher exact test, the p-values are adjusted with Benjamini-Hochberg procedure within a sample.

    The comparison group is either the whole repertoire or, in gene-usage mode (`group_by='vj'`), the clonotypes \
    having the same V and J genes; in the latter case only the neighbors sharing V and J are counted.
    """

    def __init__(self,
                 max_substitutions: int = None,
                 group_by: str = 'none',
                 alpha: float = 0.05,
                 min_count: int = 2,
                 background_top_n: int = None,
                 builder: DistanceGraphBuilder = None):
        """
        :param max_substitutions: the exact number of substitutions for two sequences to be neighbors; \
            taken from `builder` if None, 1 if there is no builder either
        :param group_by: `none` or `vj`
        :param alpha: the adjusted p-value threshold for a clonotype to be called enriched
        :param min_count: the minimal count of a clonotype to be tested
        :param background_top_n: the number of most abundant background clonotypes to use, all if None
        :param builder: the `DistanceGraphBuilder` to use, created from `max_substitutions` if None
        """
        if group_by not in GROUP_BY:
            raise ValueError(f'group_by should be one of {GROUP_BY}, got {group_by}')
        if not 0 < alpha <= 1:
            raise ValueError(f'alpha should be within (0, 1], got {alpha}')
        if builder is None:
            builder = DistanceGraphBuilder(1 if max_substitutions is None else max_substitutions)
        elif max_substitutions is not None and max_substitutions != builder.max_substitutions:
            raise ValueError(f'max_substitutions={max_substitutions} contradicts the builder with '
                             f'max_substitutions={builder.max_substitutions}')
        self.group_by = group_by
        self.alpha = alpha
        self.min_count = min_count
        self.background_top_n = background_top_n
        self.builder = builder
        self.max_substitutions = builder.max_substitutions

    @staticmethod
    def count_neighbors(edges: list[Edge], query: set[str], universe: set[str]) -> dict[str, set[str]]:
        """
        collects the neighbors from universe for each query sequence; edges are unordered so both ends are checked
        """
        neighbors = defaultdict(set)
        for e in edges:
            if e.from_cdr3 in query and e.to_cdr3 in universe:
                neighbors[e.from_cdr3].add(e.to_cdr3)
            if e.to_cdr3 in query and e.from_cdr3 in universe:
                neighbors[e.to_cdr3].add(e.from_cdr3)
        return neighbors

    def score(self, sample: Repertoire, background: Repertoire) -> list[DegreeStat]:
        """
        Runs the enrichment test for the sample
        :param sample: the test `Repertoire`
        :param background: the background `Repertoire`
        :return: the list of `DegreeStat` for the sample clonotypes with count of at least `min_count`
        """
        if self.background_top_n is not None:
            background = background.top(self.background_top_n)
        candidates = [c for c in sample if c.size() >= self.min_count]
        if not candidates or len(background) == 0:
            print(f'[{datetime.now()}]: nothing to score for {sample.sample_id}: {len(candidates)} candidates, '
                  f'{len(background)} background clonotypes')
            return []

        query = {c.cdr3aa for c in candidates}
        print(f'[{datetime.now()}]: scoring {len(query)} clonotypes of {sample.sample_id} '
              f'against {len(sample)} sample and {len(background)} background clonotypes')
        sample_seqs = sample.sequences
        background_seqs = background.sequences
        sample_neighbors = self.count_neighbors(
            self.builder.build_edges(query, sample_seqs, sample.sample_id), query, set(sample_seqs))
        background_neighbors = self.count_neighbors(
            self.builder.build_edges(query, background_seqs, sample.sample_id), query, set(background_seqs))

        rows = []
        for c in candidates:
            neighbors_s = sample_neighbors.get(c.cdr3aa, set())
            neighbors_c = background_neighbors.get(c.cdr3aa, set())
            if self.group_by == 'vj':
                group_s = sample.vj_groups.get(c.vj, set())
                group_c = background.vj_groups.get(c.vj, set())
                neighbors_s = neighbors_s & group_s
                neighbors_c = neighbors_c & group_c
                group_count_s, group_count_c = len(group_s), len(group_c)
            else:
                group_count_s, group_count_c = len(sample), len(background)
            degree_s, degree_c = len(neighbors_s), len(neighbors_c)
            rows.append((c, degree_s, degree_c, group_count_s, group_count_c,
                         get_p_value(degree_s, group_count_s, degree_c, group_count_c)))

        p_adj = adjust_p_values([x[-1] for x in rows])
        stats = [DegreeStat(sample_id=sample.sample_id,
                            cdr3aa=c.cdr3aa,
                            v=c.v,
                            j=c.j,
                            count=c.size(),
                            freq=c.freq,
                            degree_s=degree_s,
                            degree_c=degree_c,
                            group_count_s=group_count_s,
                            group_count_c=group_count_c,
                            p_value=p_value,
                            p_adj=adj,
                            fold=get_fold(degree_s, group_count_s, degree_c, group_count_c))
                 for (c, degree_s, degree_c, group_count_s, group_count_c, p_value), adj in zip(rows, p_adj)]
        print(f'[{datetime.now()}]: {len(self.enriched(stats))} enriched clonotypes in {sample.sample_id}')
        return stats

    def enriched(self, stats: list[DegreeStat]) -> list[str]:
        """
        :return: sorted sequences with adjusted p-value below `alpha`
        """
        return sorted(x.cdr3aa for x in stats if x.p_adj < self.alpha)

    @staticmethod
    def to_df(stats: list[DegreeStat]) -> pd.DataFrame:
        """
        the degree-stat table
        """
        return pd.DataFrame(stats, columns=list(DegreeStat._fields)).rename(columns=DEGREE_STAT_COLUMNS)
