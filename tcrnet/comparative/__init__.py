'''Comparison of a sample against a background repertoire'''

from .tcrnet import DegreeStat, TcrNet
from .clustering import ClusterExtractor
