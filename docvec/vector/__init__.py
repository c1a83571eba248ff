"""
Vector similarity engine - brute-force, tree-approximate and normalized-flat
strategies behind one interface.
"""

# Package initialization for vector module
from .index import IVectorStore, SimpleInMemoryVectorStore, cosine_similarity, normalize
from .types import VectorRecord, QueryResult
from .engine import VectorEngine, VectorStrategy

__all__ = [
    'IVectorStore',
    'SimpleInMemoryVectorStore',
    'VectorRecord',
    'QueryResult',
    'VectorEngine',
    'VectorStrategy',
    'cosine_similarity',
    'normalize'
]
