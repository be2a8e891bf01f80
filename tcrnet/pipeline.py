import os
import typing as t
from collections import namedtuple
from dataclasses import dataclass
from datetime import datetime

import pandas as pd
from tqdm import tqdm

from tcrnet.annotation.cluster_enrichment import ClusterAnnotationTester
from tcrnet.annotation.resolver import AnnotationCandidate, AnnotationResolver
from tcrnet.common.repertoire import Repertoire
from tcrnet.comparative.clustering import ClusterExtractor
from tcrnet.comparative.tcrnet import TcrNet
from tcrnet.distances.graph import DistanceGraphBuilder

AnnotationSource = t.Union[dict[str, list[AnnotationCandidate]],
                           t.Callable[[Repertoire], list[AnnotationCandidate]],
                           None]


@dataclass
class TcrNetParameters:
    """
    The parameters of the analysis
    """
    max_substitutions: int = 1
    group_by: str = 'none'
    alpha: float = 0.05
    min_count: int = 2
    background_top_n: int = None
    nproc: int = 1
    chunk_sz: int = 256

    def __post_init__(self):
        if self.nproc < 1:
            raise ValueError(f'nproc should be positive, got {self.nproc}')
        if self.background_top_n is not None and self.background_top_n < 1:
            raise ValueError(f'background_top_n should be positive or None, got {self.background_top_n}')


class TcrNetResult(namedtuple('TcrNetResult', 'degree_stats edges clusters cluster_annotations')):
    __slots__ = ()

    def save(self, prefix: str):
        """
        writes the tables into `{prefix}.degree_stats.txt`, `{prefix}.edges.txt` and so on
        """
        directory = os.path.dirname(prefix)
        if directory:
            os.makedirs(directory, exist_ok=True)
        for name, df in zip(self._fields, self):
            df.to_csv(f'{prefix}.{name}.txt', sep='\t', index=False)


class TcrNetPipeline:
    """
    Runs the full analysis for a set of samples against a background repertoire: neighborhood enrichment, \
    clustering of the enriched sequences together with their in-sample neighbors, annotation of sequences \
    and the test of clusters for label over-representation. Each stage is completed before the next one starts.
    """

    def __init__(self,
                 parameters: TcrNetParameters = None,
                 resolver: AnnotationResolver = None,
                 tester: ClusterAnnotationTester = None):
        self.parameters = parameters if parameters is not None else TcrNetParameters()
        builder = DistanceGraphBuilder(max_substitutions=self.parameters.max_substitutions,
                                       nproc=self.parameters.nproc,
                                       chunk_sz=self.parameters.chunk_sz)
        self.tcrnet = TcrNet(max_substitutions=self.parameters.max_substitutions,
                             group_by=self.parameters.group_by,
                             alpha=self.parameters.alpha,
                             min_count=self.parameters.min_count,
                             background_top_n=self.parameters.background_top_n,
                             builder=builder)
        self.extractor = ClusterExtractor(builder=builder)
        self.resolver = resolver if resolver is not None else AnnotationResolver()
        self.tester = tester if tester is not None else ClusterAnnotationTester()

    def run_sample(self, sample: Repertoire, background: Repertoire,
                   candidates: list[AnnotationCandidate] | t.Callable = None) -> TcrNetResult:
        """
        :param sample: the test repertoire
        :param background: the background repertoire
        :param candidates: the annotation candidates for the sample sequences or a callable returning them for \
        a repertoire; the callable is invoked only after clustering is done. The annotation stages are skipped \
        if None
        :return: the `TcrNetResult` with the tables for the sample
        """
        sample_id = sample.sample_id
        stats = self.tcrnet.score(sample, background)
        enriched = self.tcrnet.enriched(stats)

        graph = self.extractor.build_graph(enriched, sample.sequences, sample_id)
        clusters = graph.get_cluster_ids()
        print(f'[{datetime.now()}]: {len(enriched)} enriched sequences of {sample_id} form '
              f'{len(set(clusters.values()))} clusters of {len(clusters)} sequences')

        degree_df = TcrNet.to_df(stats)
        cluster_df = ClusterExtractor.to_df(clusters, sample_id)
        edge_df = DistanceGraphBuilder.to_df(graph.edges)
        if candidates is None:
            return TcrNetResult(degree_df, edge_df, cluster_df, ClusterAnnotationTester.to_df([]))

        if callable(candidates):
            candidates = candidates(sample)
        labels = {k: v for k, v in AnnotationResolver.labels(self.resolver.resolve(candidates)).items()
                  if k in sample}
        degree_df['label'] = degree_df.cdr3aa.map(labels)
        cluster_df['label'] = cluster_df.cdr3aa.map(labels)
        cluster_stats = self.tester.test(clusters, labels, sample_id)
        return TcrNetResult(degree_df, edge_df, cluster_df, ClusterAnnotationTester.to_df(cluster_stats))

    def run(self, samples: list[Repertoire], background: Repertoire,
            annotations: AnnotationSource = None) -> TcrNetResult:
        """
        :param samples: the test repertoires
        :param background: the background repertoire
        :param annotations: None, a mapping of sample id to annotation candidates or a callable (e.g. \
        `ExternalAnnotationMatcher`) returning the candidates for a repertoire
        :return: the `TcrNetResult` with the tables of all samples concatenated
        """
        results = []
        for sample in tqdm(samples, desc='TCRNET analysis'):
            if annotations is None or callable(annotations):
                candidates = annotations
            else:
                candidates = annotations.get(sample.sample_id, [])
            results.append(self.run_sample(sample, background, candidates))
        if not results:
            return TcrNetResult(TcrNet.to_df([]),
                                DistanceGraphBuilder.to_df([]),
                                ClusterExtractor.to_df({}),
                                ClusterAnnotationTester.to_df([]))
        return TcrNetResult(*[pd.concat([getattr(x, name) for x in results], ignore_index=True)
                              for name in TcrNetResult._fields])
