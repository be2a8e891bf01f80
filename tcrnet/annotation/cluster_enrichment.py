from collections import Counter, defaultdict, namedtuple

import pandas as pd
from scipy.stats import binomtest

from tcrnet.comparative.tcrnet import adjust_p_values

ClusterAnnotationStat = namedtuple(
    'ClusterAnnotationStat', 'sample_id cluster_id label matched_count cluster_size background_rate p_value p_adj')

CLUSTER_ANNOTATION_COLUMNS = {'sample_id': 'sample_id',
                              'cluster_id': 'cluster_id',
                              'label': 'label',
                              'matched_count': 'matched_count',
                              'cluster_size': 'cluster_size',
                              'background_rate': 'background_rate',
                              'p_value': 'p.value',
                              'p_adj': 'p.value.adj'}


class ClusterAnnotationTester:
    """
    Tests whether a label is over-represented within a cluster compared to its share among all annotated \
    sequences of the sample. One-sided exact binomial test is used, the p-values are adjusted with \
    Benjamini-Hochberg procedure across all (cluster, label) pairs of a sample. No filtering is done.
    """

    @staticmethod
    def background_rates(annotations: dict[str, str]) -> dict[str, float]:
        """
        :param annotations: the mapping of sample sequences to labels
        :return: the share of annotated sequences carrying each label
        """
        counts = Counter(annotations.values())
        total = sum(counts.values())
        return {label: n / total for label, n in counts.items()}

    def test(self, clusters: dict[str, str], annotations: dict[str, str],
             sample_id: str = None) -> list[ClusterAnnotationStat]:
        """
        :param clusters: the mapping of a sequence to its cluster id
        :param annotations: the mapping of a sequence to its label, for all annotated sequences of the sample
        :param sample_id: the sample identifier
        :return: the list of `ClusterAnnotationStat` sorted by raw p-value
        """
        rates = self.background_rates(annotations)
        members = defaultdict(list)
        for cdr3aa, cluster_id in clusters.items():
            members[cluster_id].append(cdr3aa)

        rows = []
        for cluster_id in sorted(members):
            cluster_size = len(members[cluster_id])
            matched = Counter(annotations[x] for x in members[cluster_id] if x in annotations)
            for label in sorted(matched):
                p_value = binomtest(matched[label], cluster_size, rates[label], alternative='greater').pvalue
                rows.append((cluster_id, label, matched[label], cluster_size, rates[label], p_value))

        p_adj = adjust_p_values([x[-1] for x in rows])
        stats = [ClusterAnnotationStat(sample_id, cluster_id, label, matched_count, cluster_size, rate, p_value, adj)
                 for (cluster_id, label, matched_count, cluster_size, rate, p_value), adj in zip(rows, p_adj)]
        # sort is stable, ties keep the cluster/label order
        return sorted(stats, key=lambda x: x.p_value)

    @staticmethod
    def to_df(stats: list[ClusterAnnotationStat]) -> pd.DataFrame:
        """
        the cluster-annotation table
        """
        return pd.DataFrame(stats, columns=list(ClusterAnnotationStat._fields)).rename(
            columns=CLUSTER_ANNOTATION_COLUMNS)
