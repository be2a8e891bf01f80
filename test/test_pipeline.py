import math
import os
import tempfile
import unittest
from itertools import islice, product

import pandas as pd

from tcrnet.annotation.matcher import AnnotationMatcherError
from tcrnet.annotation.resolver import AnnotationCandidate
from tcrnet.common.clonotype import ClonotypeAA
from tcrnet.common.repertoire import Repertoire
from tcrnet.pipeline import TcrNetParameters, TcrNetPipeline

CLONOTYPE = 'CASSLGQF'
SAMPLE_NEIGHBORS = ['CASSLGQA', 'CASSLGQD', 'CASSLGQE', 'CASSLGQG', 'CASSLGQH']


def fillers(prefix, n):
    return [prefix + ''.join(x) for x in islice(product('ACDEFGHIKL', repeat=3), n)]


def make_repertoire(seqs_to_counts, sample_id, role='test'):
    return Repertoire([ClonotypeAA(cdr3aa=seq, v='TRBV12-3', j='TRBJ2-7', cells=count)
                       for seq, count in seqs_to_counts.items()],
                      sample_id=sample_id, role=role)


class TestTcrNetPipeline(unittest.TestCase):
    def setUp(self):
        sample = {CLONOTYPE: 100}
        sample.update({x: 1 for x in SAMPLE_NEIGHBORS})
        self.sample_fillers = fillers('WWWWW', 44)
        sample.update({x: 1 for x in self.sample_fillers})
        self.sample = make_repertoire(sample, 's1')
        background = {'AASSLGQF': 1}
        background.update({x: 1 for x in fillers('GGGGG', 999)})
        self.background = make_repertoire(background, 'control', role='background')
        self.candidates = [AnnotationCandidate(CLONOTYPE, 'GLCTLVAML', 1.0, ('PMID:1',)),
                           AnnotationCandidate(SAMPLE_NEIGHBORS[0], 'GLCTLVAML', 1.0, ('PMID:1',)),
                           AnnotationCandidate(SAMPLE_NEIGHBORS[1], 'GLCTLVAML', 1.0, ('PMID:1',)),
                           AnnotationCandidate(SAMPLE_NEIGHBORS[2], 'GLCTLVAML', 1.0, ('PMID:1',)),
                           AnnotationCandidate(SAMPLE_NEIGHBORS[2], 'NLVPMVATV', 1.0, ('PMID:2',)),
                           AnnotationCandidate('NOTINSAMPLE', 'GLCTLVAML', 1.0, ('PMID:1',))]
        self.candidates += [AnnotationCandidate(x, 'NLVPMVATV', 1.0, ('PMID:2',)) for x in self.sample_fillers[:40]]
        self.pipeline = TcrNetPipeline()

    def test_without_annotations(self):
        result = self.pipeline.run([self.sample], self.background)
        assert len(result.degree_stats) == 1
        assert result.degree_stats['p.adj'][0] < 0.05
        assert sorted(result.clusters.cdr3aa) == sorted([CLONOTYPE] + SAMPLE_NEIGHBORS)
        assert set(result.clusters.cluster_id) == {'s1:0'}
        assert len(result.edges) == 5
        assert set(result.edges['from.cdr3']) == {CLONOTYPE}
        assert result.cluster_annotations.empty

    def test_with_annotations(self):
        result = self.pipeline.run([self.sample], self.background, annotations={'s1': self.candidates})
        assert result.degree_stats.label[0] == 'GLCTLVAML'
        labels = dict(zip(result.clusters.cdr3aa, result.clusters.label))
        # ambiguous sequence has no label
        assert isinstance(labels[SAMPLE_NEIGHBORS[2]], float) and math.isnan(labels[SAMPLE_NEIGHBORS[2]])
        stats = result.cluster_annotations
        assert len(stats) == 1
        row = stats.iloc[0]
        assert row.cluster_id == 's1:0'
        assert row.label == 'GLCTLVAML'
        assert row.matched_count == 3
        assert row.cluster_size == 6
        assert abs(row.background_rate - 3 / 43) < 1e-12
        assert row['p.value'] < 0.05

    def test_annotation_callable(self):
        called = []

        def annotate(repertoire):
            called.append(repertoire.sample_id)
            return self.candidates

        result = self.pipeline.run([self.sample], self.background, annotations=annotate)
        assert called == ['s1']
        assert len(result.cluster_annotations) == 1

    def test_matcher_failure(self):
        def annotate(_):
            raise AnnotationMatcherError('matcher failed')

        with self.assertRaises(AnnotationMatcherError):
            self.pipeline.run([self.sample], self.background, annotations=annotate)

    def test_several_samples(self):
        other = make_repertoire({x: 2 for x in self.sample_fillers[:3]}, 's2')
        result = self.pipeline.run([self.sample, other], self.background, annotations={'s1': self.candidates})
        assert list(result.degree_stats.sample_id.unique()) == ['s1', 's2']
        assert set(result.clusters.sample_id) == {'s1', 's2'}
        assert set(result.clusters[result.clusters.sample_id == 's2'].cluster_id) == {'s2:0'}
        assert set(result.cluster_annotations.sample_id) == {'s1'}

    def test_no_samples(self):
        result = self.pipeline.run([], self.background)
        assert all(df.empty for df in result)
        assert 'p.adj' in result.degree_stats.columns

    def test_parameters(self):
        pipeline = TcrNetPipeline(TcrNetParameters(max_substitutions=2, alpha=0.01, nproc=1))
        assert pipeline.tcrnet.builder.max_substitutions == 2
        assert pipeline.extractor.builder is pipeline.tcrnet.builder
        with self.assertRaises(ValueError):
            TcrNetParameters(nproc=0)
        with self.assertRaises(ValueError):
            TcrNetPipeline(TcrNetParameters(group_by='gene'))

    def test_save(self):
        result = self.pipeline.run([self.sample], self.background, annotations={'s1': self.candidates})
        with tempfile.TemporaryDirectory() as tmp:
            prefix = os.path.join(tmp, 'out', 'tcrnet')
            result.save(prefix)
            for name in ('degree_stats', 'edges', 'clusters', 'cluster_annotations'):
                assert os.path.exists(f'{prefix}.{name}.txt')
            edges = pd.read_csv(f'{prefix}.edges.txt', sep='\t')
        assert list(edges.columns) == ['from.cdr3', 'to.cdr3', 'sample_id']


if __name__ == "__main__":
    unittest.main()
