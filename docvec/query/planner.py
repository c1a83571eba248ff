"""
Query Planner - chooses how a query runs, then orders and paginates.

Routing:
  - similarity requests only      -> vector_only
  - conditions only               -> document_only (one merged backend.find)
  - both, mostly selective clauses -> hybrid_documents_first
  - both, otherwise               -> hybrid_vectors_first
  - neither                       -> scan

The two hybrid paths approximate "matches every condition AND is among the
top-K most similar". Documents-first over-fetches each vector search
(limit x overfetch) and intersects with the candidates; vectors-first
filters the top-K afterwards. They can disagree once the over-fetch runs
out; that imprecision is part of the contract.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..core.conditions import is_selective, matches_conditions, get_nested_field
from ..core.config import get_hybrid_overfetch
from ..core.schema import ID_FIELD, Document
from ..util.logging import logger
from .schemas import OrderClause, SimilarityRequest


class ExecutionPath(str, Enum):
    SCAN = "scan"
    DOCUMENT_ONLY = "document_only"
    VECTOR_ONLY = "vector_only"
    HYBRID_DOCUMENTS_FIRST = "hybrid_documents_first"
    HYBRID_VECTORS_FIRST = "hybrid_vectors_first"


def _sort_key(value: Any):
    """Total order over mixed JSON values; None compares greater than anything."""
    if value is None:
        return (True, 0, 0)
    if isinstance(value, bool):
        return (False, 0, int(value))
    if isinstance(value, (int, float)):
        return (False, 1, value)
    if isinstance(value, str):
        return (False, 2, value)
    return (False, 3, json.dumps(value, sort_keys=True, default=str))


def order_documents(documents: List[Document], orders: Sequence[OrderClause]) -> List[Document]:
    """
    Stable multi-key sort. Ascending puts nulls last, descending puts them
    first; earlier clauses take precedence.
    """
    ordered = list(documents)
    for clause in reversed(list(orders)):
        if clause.by_similarity:
            getter = lambda doc: doc.similarity
        else:
            getter = lambda doc, field=clause.field: get_nested_field(doc, field)
        ordered.sort(key=lambda doc: _sort_key(getter(doc)), reverse=clause.descending)
    return ordered


def paginate(documents: List[Document], limit: Optional[int], offset: int) -> List[Document]:
    if limit is None:
        return documents[offset:]
    return documents[offset:offset + limit]


class QueryPlanner:
    """Runs one query against a backend and a vector engine."""

    def __init__(self, backend, engine, hybrid_overfetch: Optional[int] = None):
        self.backend = backend
        self.engine = engine
        self.hybrid_overfetch = hybrid_overfetch if hybrid_overfetch is not None else get_hybrid_overfetch()

    def choose_path(self, conditions: Mapping[str, Any],
                    requests: Sequence[SimilarityRequest]) -> ExecutionPath:
        if requests and not conditions:
            return ExecutionPath.VECTOR_ONLY
        if conditions and not requests:
            return ExecutionPath.DOCUMENT_ONLY
        if not conditions and not requests:
            return ExecutionPath.SCAN

        selective = sum(1 for value in conditions.values() if is_selective(value))
        if selective * 2 > len(conditions):
            return ExecutionPath.HYBRID_DOCUMENTS_FIRST
        return ExecutionPath.HYBRID_VECTORS_FIRST

    def execute(self, table: str, conditions: Mapping[str, Any], requests: Sequence[SimilarityRequest],
                orders: Sequence[OrderClause] = (), limit: Optional[int] = None,
                offset: int = 0) -> List[Document]:
        path = self.choose_path(conditions, requests)
        logger.log_query_plan(table, path.value, {
            "conditions": len(conditions),
            "similarity_requests": len(requests),
            "orders": len(orders)
        })

        if path is ExecutionPath.SCAN:
            documents = [Document(doc) for doc in self.backend.all_documents(table)]
        elif path is ExecutionPath.DOCUMENT_ONLY:
            documents = [Document(doc) for doc in self.backend.find(table, conditions)]
        elif path is ExecutionPath.VECTOR_ONLY:
            documents = self._vector_search(table, requests)
        elif path is ExecutionPath.HYBRID_DOCUMENTS_FIRST:
            documents = self._documents_first(table, conditions, requests)
        else:
            documents = [doc for doc in self._vector_search(table, requests)
                         if matches_conditions(doc, conditions)]

        if orders:
            documents = order_documents(documents, orders)
        return paginate(documents, limit, offset)

    def _collect(self, table: str, request: SimilarityRequest, limit: int) -> List:
        return self.engine.search_similar(request.collection(table), request.vector,
                                          limit=limit, threshold=request.threshold)

    def _vector_search(self, table: str, requests: Sequence[SimilarityRequest]) -> List[Document]:
        """Union of every request's hits, best similarity per id, most similar first."""
        best: Dict[int, float] = {}
        for request in requests:
            for hit in self._collect(table, request, request.limit):
                if hit.id not in best or hit.score > best[hit.id]:
                    best[hit.id] = hit.score

        documents = []
        for doc_id, similarity in best.items():
            data = self.backend.get(table, doc_id)
            if data is None:
                # Vector outlived its document
                continue
            documents.append(Document(data, similarity=similarity))
        documents.sort(key=lambda doc: -doc.similarity)
        return documents

    def _documents_first(self, table: str, conditions: Mapping[str, Any],
                         requests: Sequence[SimilarityRequest]) -> List[Document]:
        candidates = {doc[ID_FIELD]: doc for doc in self.backend.find(table, conditions)}
        if not candidates:
            return []

        best: Dict[int, float] = {}
        for request in requests:
            hits = self._collect(table, request, request.limit * self.hybrid_overfetch)
            kept = [hit for hit in hits if hit.id in candidates][:request.limit]
            for hit in kept:
                if hit.id not in best or hit.score > best[hit.id]:
                    best[hit.id] = hit.score

        documents = [Document(candidates[doc_id], similarity=similarity) for doc_id, similarity in best.items()]
        documents.sort(key=lambda doc: -doc.similarity)
        return documents
