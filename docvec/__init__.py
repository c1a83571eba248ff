"""
docvec - embedded document store with secondary indexes and vector similarity search.
"""

from .core.config import VERSION
from .core.errors import (
    ConcurrencyHazard,
    ConfigurationError,
    CorruptRecord,
    DimensionMismatch,
    DocvecError,
    InvalidName,
    InvalidQuery,
    MaintenanceError,
    RecordNotFound,
)
from .core.schema import Document
from .core.store import Store
from .vector.engine import VectorEngine, VectorStrategy

__version__ = VERSION

__all__ = [
    'Store',
    'Document',
    'VectorEngine',
    'VectorStrategy',
    'DocvecError',
    'RecordNotFound',
    'ConfigurationError',
    'DimensionMismatch',
    'CorruptRecord',
    'ConcurrencyHazard',
    'InvalidQuery',
    'InvalidName',
    'MaintenanceError'
]
