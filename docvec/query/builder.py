"""
Chainable query builder.

    store.query("users").where(age={"gte": 30}).order({"age": "desc"}).limit(10).to_list()

Builder calls only collect state; every terminal call (to_list, first,
count, ...) runs the planner again from scratch.
"""

import copy
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..core.conditions import is_operator_map, normalize_conditions
from ..core.config import get_similarity_limit
from ..core.errors import InvalidQuery
from ..core.schema import Document, validate_table_name
from ..vector.index import as_vector
from .planner import ExecutionPath, QueryPlanner
from .schemas import SIMILARITY_ORDER, OrderClause, SimilarityRequest


def merge_conditions(current: Dict[str, Any], extra: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Combine two condition maps.

    Operator maps on the same field are merged and must all hold; a later
    literal replaces an earlier literal. Mixing a literal with an operator
    map on one field raises InvalidQuery.
    """
    merged = dict(current)
    for field, value in extra.items():
        if field not in merged:
            merged[field] = value
            continue
        existing = merged[field]
        if is_operator_map(existing) and is_operator_map(value):
            merged[field] = {**existing, **value}
        elif is_operator_map(existing) or is_operator_map(value):
            raise InvalidQuery(f"Cannot combine a literal and an operator condition on '{field}'")
        else:
            merged[field] = value
    return merged


class QueryBuilder:
    """Collects conditions, similarity requests, ordering and pagination for one table."""

    def __init__(self, backend, engine, table: str, hybrid_overfetch: Optional[int] = None,
                 similarity_limit: Optional[int] = None):
        self.table = validate_table_name(table)
        self._planner = QueryPlanner(backend, engine, hybrid_overfetch)
        self._similarity_limit = similarity_limit
        self._conditions: Dict[str, Any] = {}
        self._requests: List[SimilarityRequest] = []
        self._orders: List[OrderClause] = []
        self._limit: Optional[int] = None
        self._offset = 0

    # -- collecting ---------------------------------------------------------

    def where(self, conditions: Optional[Mapping[str, Any]] = None, **fields) -> "QueryBuilder":
        """Add conditions; repeated calls are ANDed together."""
        self._conditions = merge_conditions(self._conditions, normalize_conditions(conditions))
        self._conditions = merge_conditions(self._conditions, normalize_conditions(fields))
        return self

    def similar_to(self, vector, field: Optional[str] = None, threshold: float = 0.0,
                   limit: Optional[int] = None, algorithm: Optional[str] = None) -> "QueryBuilder":
        """Add a nearest-neighbour request against collection '<table>_<field>'."""
        try:
            values = as_vector(vector).tolist()
        except ValueError as e:
            raise InvalidQuery(f"Invalid similarity vector: {e}") from e

        options = {"vector": values, "threshold": threshold}
        if field is not None:
            options["field"] = field
        if algorithm is not None:
            options["algorithm"] = algorithm
        if limit is not None:
            options["limit"] = limit
        elif self._similarity_limit is not None:
            options["limit"] = self._similarity_limit
        else:
            options["limit"] = get_similarity_limit()

        try:
            self._requests.append(SimilarityRequest(**options))
        except ValidationError as e:
            raise InvalidQuery(f"Invalid similarity options: {e}") from e
        return self

    def order(self, field_or_map: Union[str, Mapping[str, str]], direction: str = "asc") -> "QueryBuilder":
        """order("age"), order("age", "desc") or order({"age": "desc", "name": "asc"})."""
        if isinstance(field_or_map, Mapping):
            clauses = list(field_or_map.items())
        else:
            clauses = [(field_or_map, direction)]

        for field, clause_direction in clauses:
            try:
                self._orders.append(OrderClause(field=str(field), direction=str(clause_direction)))
            except ValidationError as e:
                raise InvalidQuery(f"Invalid order clause: {e}") from e
        return self

    def order_by_similarity(self) -> "QueryBuilder":
        self._orders.append(OrderClause(field=SIMILARITY_ORDER, direction="desc"))
        return self

    def limit(self, n: int) -> "QueryBuilder":
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise InvalidQuery(f"limit must be a non-negative integer, got {n!r}")
        self._limit = n
        return self

    def offset(self, n: int) -> "QueryBuilder":
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise InvalidQuery(f"offset must be a non-negative integer, got {n!r}")
        self._offset = n
        return self

    # -- terminals ----------------------------------------------------------

    def to_list(self) -> List[Document]:
        return self._planner.execute(self.table, self._conditions, self._requests,
                                     self._orders, self._limit, self._offset)

    def all(self) -> List[Document]:
        return self.to_list()

    def first(self) -> Optional[Document]:
        results = self._copy().limit(1).to_list()
        return results[0] if results else None

    def last(self) -> Optional[Document]:
        results = self.to_list()
        return results[-1] if results else None

    def count(self) -> int:
        """Number of matching documents, ignoring ordering, limit and offset."""
        return len(self._planner.execute(self.table, self._conditions, self._requests))

    def exists(self) -> bool:
        return self.first() is not None

    def explain(self) -> str:
        """Name of the execution path the planner would take."""
        path: ExecutionPath = self._planner.choose_path(self._conditions, self._requests)
        return path.value

    def __iter__(self):
        return iter(self.to_list())

    def _copy(self) -> "QueryBuilder":
        clone = copy.copy(self)
        clone._conditions = dict(self._conditions)
        clone._requests = list(self._requests)
        clone._orders = list(self._orders)
        return clone

    def __repr__(self) -> str:
        return (f"QueryBuilder(table={self.table!r}, conditions={self._conditions!r}, "
                f"similar_to={len(self._requests)}, limit={self._limit}, offset={self._offset})")
