"""
Query layer - builder, planner and request models.
"""

from .builder import QueryBuilder
from .planner import ExecutionPath, QueryPlanner
from .schemas import OrderClause, SimilarityRequest

__all__ = [
    'QueryBuilder',
    'QueryPlanner',
    'ExecutionPath',
    'OrderClause',
    'SimilarityRequest'
]
