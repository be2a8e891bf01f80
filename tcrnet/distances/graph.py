import math
from collections import defaultdict, namedtuple
from multiprocessing import Pool

import igraph as ig
import pandas as pd
import textdistance

Edge = namedtuple('Edge', 'from_cdr3 to_cdr3 sample_id')


def hamming_distance(s1: str, s2: str) -> float:
    """
    substitution-only distance between two sequences; sequences of different length are never adjacent, \
    the distance between them is infinite
    """
    if len(s1) != len(s2):
        return math.inf
    return textdistance.hamming.distance(s1, s2)


def _masks(seq: str):
    # position is a part of the key: 'CAX' masked at 2 and 'CXS' masked at 1 are not neighbors
    for i in range(len(seq)):
        yield i, seq[:i] + 'X' + seq[i + 1:]


def index_universe(universe, max_substitutions: int) -> dict:
    """
    groups universe sequences by their masked variants for a single substitution, by length otherwise
    """
    index = defaultdict(list)
    for u in universe:
        if max_substitutions == 1:
            for mask in _masks(u):
                index[mask].append(u)
        else:
            index[len(u)].append(u)
    return index


# set once per worker process by _init_worker
_universe_index = None
_overlap = None
_max_substitutions = None


def _init_worker(index, overlap, max_substitutions):
    global _universe_index, _overlap, _max_substitutions
    _universe_index = index
    _overlap = overlap
    _max_substitutions = max_substitutions


def _edges_for_chunk(chunk) -> list[tuple[str, str]]:
    """
    finds all pairs at exactly `max_substitutions` for a chunk of query sequences against the universe index
    :param chunk: query sequences
    :return: the list of (query, universe) pairs
    """
    res = []

    def emit(q, u):
        # pairs with both ends in query and universe are reported once, from the smaller sequence
        if q in _overlap and u in _overlap and u < q:
            return
        res.append((q, u))

    for q in chunk:
        if _max_substitutions == 1:
            for mask in _masks(q):
                for u in _universe_index.get(mask, ()):
                    if u != q:
                        emit(q, u)
        else:
            for u in _universe_index.get(len(q), ()):
                if u != q and hamming_distance(q, u) == _max_substitutions:
                    emit(q, u)
    return res


class DistanceGraphBuilder:
    """
    Finds all the pairs of sequences at exactly the given number of substitutions between a query and \
    a universe set of sequences. Pairs of sequences of different length are skipped.
    """
    def __init__(self, max_substitutions: int = 1, nproc: int = 1, chunk_sz: int = 256):
        """
        :param max_substitutions: the exact Hamming distance for two sequences to be connected
        :param nproc: number of processes to split the query over
        :param chunk_sz: number of query sequences processed by a single job
        """
        if max_substitutions < 0:
            raise ValueError(f'Number of substitutions should be non-negative, got {max_substitutions}')
        self.max_substitutions = max_substitutions
        self.nproc = nproc
        self.chunk_sz = max(1, chunk_sz)

    def build_edges(self, query, universe, sample_id: str = None) -> list[Edge]:
        """
        computes the edges between query and universe sequences
        :param query: an iterable of sequences
        :param universe: an iterable of sequences
        :param sample_id: the sample the edges are computed in
        :return: the list of edges sorted by (from_cdr3, to_cdr3), each unordered pair is present once
        """
        query = sorted(set(query))
        universe = sorted(set(universe))
        if not query or not universe or self.max_substitutions == 0:
            return []
        overlap = set(query).intersection(universe)
        init_args = (index_universe(universe, self.max_substitutions), overlap, self.max_substitutions)
        jobs = [query[i:i + self.chunk_sz] for i in range(0, len(query), self.chunk_sz)]
        if self.nproc == 1 or len(jobs) == 1:
            _init_worker(*init_args)
            parts = list(map(_edges_for_chunk, jobs))
        else:
            # the index is sent to every worker once instead of with every chunk
            with Pool(self.nproc, initializer=_init_worker, initargs=init_args) as pool:
                parts = pool.map(_edges_for_chunk, jobs)
        pairs = sorted(pair for part in parts for pair in part)
        return [Edge(q, u, sample_id) for q, u in pairs]

    @staticmethod
    def to_df(edges: list[Edge]) -> pd.DataFrame:
        """
        the edge table: `from.cdr3, to.cdr3, sample_id`
        """
        return pd.DataFrame(edges, columns=['from.cdr3', 'to.cdr3', 'sample_id'])


class SequenceGraph:
    """
    The undirected graph of sequences built from edges. Sequences are the vertices, the vertex ids follow \
    the sorted order of sequences, so that cluster numbering does not depend on the order the edges come in.
    """
    def __init__(self, edges: list[Edge], nodes=(), sample_id: str = None):
        """
        :param edges: the list of edges
        :param nodes: additional vertices, these are kept even if they have no edges
        :param sample_id: the sample the graph is built for; used as the cluster id prefix
        """
        names = sorted(set(nodes).union(x for e in edges for x in (e.from_cdr3, e.to_cdr3)))
        index = {seq: i for i, seq in enumerate(names)}
        self.sample_id = sample_id
        self.edges = edges
        self.graph = ig.Graph(n=len(names), edges=[(index[e.from_cdr3], index[e.to_cdr3]) for e in edges])
        self.clusters = []
        if names:
            self.graph.vs['name'] = names
            self.clusters = self.graph.connected_components()

    def get_seqs(self) -> list[str]:
        return self.graph.vs['name'] if self.graph.vcount() else []

    def get_components(self) -> list[list[str]]:
        """
        connected components as lists of sequences; ordered by the smallest sequence in a component
        """
        names = self.get_seqs()
        # vertex ids are assigned in sorted order, so the smallest id is the smallest sequence
        components = sorted((sorted(c) for c in self.clusters), key=lambda c: c[0])
        return [[names[i] for i in c] for c in components]

    def get_cluster_ids(self) -> dict[str, str]:
        """
        the mapping of a sequence to its cluster id
        """
        res = {}
        for k, component in enumerate(self.get_components()):
            cluster_id = str(k) if self.sample_id is None else f'{self.sample_id}:{k}'
            for seq in component:
                res[seq] = cluster_id
        return res
