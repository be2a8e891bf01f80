'''Sequence distances and graphs'''

from .graph import Edge, hamming_distance, DistanceGraphBuilder, SequenceGraph
