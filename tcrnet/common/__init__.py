'''Common classes and routines'''

from .clonotype import Clonotype, ClonotypeAA, ClonotypeNT
from .parser import MissingColumnsError, SegmentParser, ClonotypeTableParser, VDJtoolsParser
from .repertoire import Repertoire
