"""
Vector store contract and the brute-force cosine implementation.

Similarity everywhere is cosine: the dot product of L2-normalized vectors,
clipped to [-1, 1]. A zero-magnitude vector has similarity 0 with anything.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import numpy as np

from ..core.errors import DimensionMismatch
from .types import QueryResult, VectorRecord


def as_vector(values) -> np.ndarray:
    """Validate and convert a vector-like value to a 1-D float64 array."""
    vector = np.asarray(values, dtype=np.float64)
    if vector.ndim == 2 and vector.shape[0] == 1:
        vector = vector.reshape(-1)
    if vector.ndim != 1 or vector.size == 0:
        raise ValueError(f"Expected a non-empty 1-D vector, got shape {vector.shape}")
    return vector


def normalize(vector: np.ndarray) -> np.ndarray:
    """L2-normalize; a zero vector stays zero instead of dividing by zero."""
    norm = np.linalg.norm(vector)
    if norm == 0:
        return np.zeros_like(vector)
    return vector / norm


def cosine_similarity(vec_a, vec_b) -> float:
    """Cosine similarity of two vectors of equal length."""
    a = as_vector(vec_a)
    b = as_vector(vec_b)
    if a.shape != b.shape:
        raise DimensionMismatch("<adhoc>", a.shape[0], b.shape[0])

    magnitude_a = np.linalg.norm(a)
    magnitude_b = np.linalg.norm(b)
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / (magnitude_a * magnitude_b), -1.0, 1.0))


def rank_results(ids: List[int], scores: np.ndarray, metadata: dict,
                 top_k: int, threshold: float) -> List[QueryResult]:
    """Highest score first, stable on ties, truncated to top_k, nothing below threshold."""
    order = np.argsort(-scores, kind="stable")
    results = []
    for position in order:
        score = float(scores[position])
        if score < threshold:
            break
        record_id = ids[position]
        results.append(QueryResult(id=record_id, score=score, metadata=dict(metadata.get(record_id, {}))))
        if len(results) >= top_k:
            break
    return results


class IVectorStore(ABC):
    """Abstract interface for a single vector collection."""

    def __init__(self, collection: str = "default", dimension: Optional[int] = None):
        self.collection = collection
        self.dimension = dimension

    def _check_vector(self, values) -> np.ndarray:
        """Validate a vector being stored; the first one fixes the dimensionality."""
        vector = as_vector(values)
        if self.dimension is None:
            self.dimension = int(vector.shape[0])
        elif vector.shape[0] != self.dimension:
            raise DimensionMismatch(self.collection, self.dimension, int(vector.shape[0]))
        return vector

    def _check_query(self, values) -> np.ndarray:
        vector = as_vector(values)
        if self.dimension is not None and vector.shape[0] != self.dimension:
            raise DimensionMismatch(self.collection, self.dimension, int(vector.shape[0]))
        return vector

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add or overwrite a single vector record."""
        pass

    def batch_add(self, records: Iterable[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        for record in records:
            self.add(record)

    @abstractmethod
    def search(self, query_vector, top_k: int = 5, threshold: float = 0.0) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        pass

    @abstractmethod
    def delete(self, record_id: int) -> bool:
        """Delete a vector record by id. Returns False if it was absent."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    @abstractmethod
    def __contains__(self, record_id: int) -> bool:
        pass

    def build(self) -> None:
        """Prepare the store for queries. Only approximate stores need this."""
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """Brute-force exact cosine search: raw vectors, O(n) per query."""

    def __init__(self, collection: str = "default", dimension: Optional[int] = None):
        super().__init__(collection, dimension)
        self._vectors = {}   # record_id -> raw vector
        self._metadata = {}  # record_id -> metadata

    def add(self, record: VectorRecord) -> None:
        vector = self._check_vector(record.vector)
        self._vectors[record.id] = vector.copy()
        self._metadata[record.id] = dict(record.metadata or {})

    def search(self, query_vector, top_k: int = 5, threshold: float = 0.0) -> List[QueryResult]:
        query = self._check_query(query_vector)
        if not self._vectors or top_k <= 0:
            return []

        ids = list(self._vectors)
        matrix = np.vstack([self._vectors[record_id] for record_id in ids])

        # Cosine similarity with zero-magnitude guard
        dots = matrix @ query
        denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.divide(dots, denominators, out=np.zeros_like(dots), where=denominators > 0)
        scores = np.clip(scores, -1.0, 1.0)

        return rank_results(ids, scores, self._metadata, top_k, threshold)

    def delete(self, record_id: int) -> bool:
        if record_id not in self._vectors:
            return False
        del self._vectors[record_id]
        self._metadata.pop(record_id, None)
        return True

    def clear(self) -> None:
        self._vectors.clear()
        self._metadata.clear()

    def get(self, record_id: int) -> Optional[VectorRecord]:
        if record_id not in self._vectors:
            return None
        return VectorRecord(id=record_id, vector=self._vectors[record_id].copy(),
                            metadata=dict(self._metadata[record_id]))

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, record_id: int) -> bool:
        return record_id in self._vectors
