'''Functional annotation of sequences and clusters'''

from .resolver import AnnotationCandidate, AnnotationResolver, is_publication
from .matcher import AnnotationMatcherError, MalformedAnnotationError, ExternalAnnotationMatcher, \
    load_annotation_candidates
from .cluster_enrichment import ClusterAnnotationStat, ClusterAnnotationTester
from .rules import AnnotationRule, AnnotationRuleTable
