import os
import tempfile
import unittest
from copy import copy

import pandas as pd

from tcrnet.common.clonotype import ClonotypeNT
from tcrnet.common.parser import ClonotypeTableParser, MissingColumnsError, SegmentParser, VDJtoolsParser
from tcrnet.common.repertoire import Repertoire


def make_table():
    return pd.DataFrame({'count': [10, 5, 3, 1],
                         'freq': [0.5, 0.25, 0.15, 0.1],
                         'cdr3nt': ['TGTGCCAGCAGC', 'TGTGCCAGCAGT', None, 'TGTGCCAGCCGC'],
                         'cdr3aa': ['CASS', 'CASS', 'CASR', None],
                         'v': ['TRBV12-3*01', 'TRBV12-4*01', 'TRBV6-2,TRBV6-3', 'TRBV5-1'],
                         'd': ['TRBD1', None, None, '.'],
                         'j': ['TRBJ2-7*01', 'TRBJ2-7', 'TRBJ1-1', 'TRBJ1-2']})


class TestClonotype(unittest.TestCase):
    def test_copy(self):
        clonotype = ClonotypeNT('TGTGCCAGCAGC', v='TRBV12-3', j='TRBJ2-7', id=3, cells=5, freq=0.5)
        other = copy(clonotype)
        other.cells = 10
        assert clonotype.cells == 5
        assert (other.cdr3nt, other.cdr3aa, other.v, other.j, other.id, other.freq) == \
               ('TGTGCCAGCAGC', 'CASS', 'TRBV12-3', 'TRBJ2-7', 3, 0.5)
        assert not hasattr(other, 'payload')


class TestSegmentParser(unittest.TestCase):
    def test_parse(self):
        parser = SegmentParser()
        assert parser.parse('TRBV12-3*01') == 'TRBV12-3'
        assert parser.parse('TRBV6-2,TRBV6-3') == 'TRBV6-2'
        assert parser.parse(None) is None
        assert parser.parse(float('nan')) is None
        assert parser.parse('.') is None

    def test_keep_allele(self):
        assert SegmentParser(remove_allele=False).parse('TRBV12-3*01') == 'TRBV12-3*01'


class TestClonotypeTableParser(unittest.TestCase):
    def test_missing_columns(self):
        with self.assertRaises(MissingColumnsError) as ctx:
            ClonotypeTableParser().parse(make_table().drop(columns=['freq', 'v']))
        assert ctx.exception.missing == ['freq', 'v']

    def test_translation(self):
        clonotypes = ClonotypeTableParser().parse(make_table())
        assert [x.cdr3aa for x in clonotypes] == ['CASS', 'CASS', 'CASR', 'CASR']
        assert clonotypes[2].v == 'TRBV6-2'
        assert clonotypes[3].d is None

    def test_drop_empty_rows(self):
        df = make_table()
        df.loc[3, 'cdr3nt'] = None
        with self.assertWarns(UserWarning):
            clonotypes = ClonotypeTableParser().parse(df)
        assert len(clonotypes) == 3

    def test_head(self):
        assert len(ClonotypeTableParser().parse(make_table(), n=2)) == 2

    def test_vdjtools_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'sample.txt')
            make_table().rename(columns={'count': '#count'}).to_csv(path, sep='\t', index=False)
            repertoire = Repertoire.load(VDJtoolsParser(), path, sample_id='s1')
        assert repertoire.sample_id == 's1'
        assert repertoire.metadata['path'] == path
        assert len(repertoire) == 2


class TestRepertoire(unittest.TestCase):
    def setUp(self):
        self.repertoire = Repertoire.load_from_df(make_table(), sample_id='s1')

    def test_aggregation(self):
        assert len(self.repertoire) == 2
        cass = self.repertoire.get('CASS')
        assert cass.cells == 15
        assert abs(cass.freq - 0.75) < 1e-12
        assert cass.v == 'TRBV12-3'
        assert self.repertoire.get('CASR').cells == 4
        assert self.repertoire.number_of_reads == 19

    def test_frequencies_from_counts(self):
        df = make_table()
        df['freq'] = None
        repertoire = Repertoire.load_from_df(df)
        assert abs(repertoire.get('CASS').freq - 15 / 19) < 1e-12

    def test_mixed_frequencies_recomputed(self):
        df = pd.DataFrame({'count': [10, 10],
                           'freq': [0.9, None],
                           'cdr3nt': [None, None],
                           'cdr3aa': ['CASS', 'CASR'],
                           'v': ['TRBV12-3', 'TRBV12-3'],
                           'j': ['TRBJ2-7', 'TRBJ2-7']})
        repertoire = Repertoire.load_from_df(df)
        assert repertoire.get('CASS').freq == 0.5
        assert repertoire.get('CASR').freq == 0.5

    def test_sequences(self):
        assert self.repertoire.sequences == ['CASR', 'CASS']
        assert 'CASS' in self.repertoire
        assert 'CAST' not in self.repertoire

    def test_top(self):
        top = self.repertoire.top(1)
        assert top.sequences == ['CASS']
        assert top.sample_id == 's1'

    def test_vj_groups(self):
        assert self.repertoire.vj_groups == {('TRBV12-3', 'TRBJ2-7'): {'CASS'},
                                             ('TRBV6-2', 'TRBJ1-1'): {'CASR'}}

    def test_serialize(self):
        df = self.repertoire.serialize()
        assert list(df.columns) == ['count', 'freq', 'cdr3nt', 'cdr3aa', 'v', 'd', 'j']
        assert df.cdr3aa.tolist() == ['CASS', 'CASR']

    def test_role(self):
        with self.assertRaises(ValueError):
            Repertoire([], role='control')

    def test_split_by_sample(self):
        df = pd.concat([make_table().assign(sample_id='s1'), make_table().head(1).assign(sample_id='s2')])
        repertoires = Repertoire.split_by_sample(df)
        assert [x.sample_id for x in repertoires] == ['s1', 's2']
        assert len(repertoires[1]) == 1


if __name__ == "__main__":
    unittest.main()
