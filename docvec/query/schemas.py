"""
Validated request models for the query builder.
"""

from typing import List, Optional

from pydantic import BaseModel, field_validator

from ..core.config import DEFAULT_SIMILARITY_LIMIT, DEFAULT_VECTOR_FIELD, VECTOR_ENGINES

# Order clause field meaning "by similarity score" rather than a document field
SIMILARITY_ORDER = "_similarity"

ORDER_DIRECTIONS = ("asc", "desc")


class SimilarityRequest(BaseModel):
    vector: List[float]
    field: str = DEFAULT_VECTOR_FIELD
    threshold: float = 0.0
    limit: int = DEFAULT_SIMILARITY_LIMIT
    algorithm: Optional[str] = None

    @field_validator('vector')
    @classmethod
    def vector_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('vector cannot be empty')
        return v

    @field_validator('field')
    @classmethod
    def field_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('field cannot be empty')
        return v

    @field_validator('threshold')
    @classmethod
    def threshold_must_be_in_range(cls, v):
        if not -1.0 <= v <= 1.0:
            raise ValueError('threshold must be between -1 and 1')
        return v

    @field_validator('limit')
    @classmethod
    def limit_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('limit must be at least 1')
        return v

    @field_validator('algorithm')
    @classmethod
    def algorithm_must_be_valid(cls, v):
        # Informational only: the engine strategy is fixed per store
        if v is not None and v not in VECTOR_ENGINES:
            raise ValueError(f'algorithm must be one of: {list(VECTOR_ENGINES)}')
        return v

    def collection(self, table: str) -> str:
        return f"{table}_{self.field}"


class OrderClause(BaseModel):
    field: str
    direction: str = "asc"

    @field_validator('field')
    @classmethod
    def field_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('order field cannot be empty')
        return v

    @field_validator('direction')
    @classmethod
    def direction_must_be_valid(cls, v):
        v = v.lower()
        if v not in ORDER_DIRECTIONS:
            raise ValueError(f'direction must be one of: {list(ORDER_DIRECTIONS)}')
        return v

    @property
    def descending(self) -> bool:
        return self.direction == "desc"

    @property
    def by_similarity(self) -> bool:
        return self.field == SIMILARITY_ORDER
