import pandas as pd

from tcrnet.distances.graph import DistanceGraphBuilder, SequenceGraph


class ClusterExtractor:
    """
    Groups enriched sequences and their neighbors into clusters (connected components of the graph built from \
    the enriched sequences against a neighborhood universe). Enriched sequences without neighbors are singleton \
    clusters. Cluster numbering depends only on the sequences, not on their input order.
    """
    def __init__(self, max_substitutions: int = 1, builder: DistanceGraphBuilder = None):
        self.builder = builder if builder is not None else DistanceGraphBuilder(max_substitutions)

    def build_graph(self, enriched, neighborhood_universe, sample_id: str = None) -> SequenceGraph:
        """
        :param enriched: an iterable of enriched sequences
        :param neighborhood_universe: an iterable of sequences the neighbors are searched among
        :param sample_id: the sample identifier, a prefix of cluster ids
        :return: the `SequenceGraph` object
        """
        enriched = set(enriched)
        edges = self.builder.build_edges(enriched, neighborhood_universe, sample_id)
        return SequenceGraph(edges, nodes=enriched, sample_id=sample_id)

    def cluster(self, enriched, neighborhood_universe, sample_id: str = None) -> dict[str, str]:
        """
        :return: the mapping of a sequence to its cluster id
        """
        return self.build_graph(enriched, neighborhood_universe, sample_id).get_cluster_ids()

    @staticmethod
    def to_df(clusters: dict[str, str], sample_id: str = None) -> pd.DataFrame:
        """
        the cluster table: `cdr3aa, sample_id, cluster_id`
        """
        return pd.DataFrame({'cdr3aa': list(clusters.keys()),
                             'sample_id': [sample_id] * len(clusters),
                             'cluster_id': list(clusters.values())},
                            columns=['cdr3aa', 'sample_id', 'cluster_id'])
