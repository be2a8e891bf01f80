'''TCRNET: neighborhood enrichment and clustering of immune receptor repertoires'''

__version__ = '0.1.0'
