"""
Tree-based approximate vector store (scipy cKDTree over normalized vectors).

For unit vectors the Euclidean distance d and the cosine similarity are
related by cos = 1 - d^2 / 2, so nearest neighbours in the tree are the most
similar vectors. A tree is static: adds and removals only mark it stale, and
a build re-inserts every live vector. Queries answer from the last build;
with auto_build enabled a stale tree is rebuilt before the query runs.
`eps > 0` lets the tree return approximate neighbours faster.
"""

import threading
from typing import List, Optional

import numpy as np
from scipy.spatial import cKDTree

from ..util.logging import logger
from .index import IVectorStore, normalize
from .types import QueryResult, VectorRecord


class TreeVectorStore(IVectorStore):
    """Approximate nearest-neighbour store that must be (re)built before queries."""

    def __init__(self, collection: str = "default", dimension: Optional[int] = None,
                 leaf_size: int = 16, eps: float = 0.0, auto_build: bool = True):
        super().__init__(collection, dimension)
        self.leaf_size = leaf_size
        self.eps = eps
        self.auto_build = auto_build

        self._vectors = {}   # record_id -> normalized vector
        self._metadata = {}  # record_id -> metadata
        self._tree = None
        self._built_ids: List[int] = []
        self._built_zero_ids: List[int] = []
        self._built = False
        self.needs_build = False
        # Guards the build state; searches may trigger a rebuild
        self._lock = threading.RLock()

    @property
    def is_built(self) -> bool:
        return self._built

    def add(self, record: VectorRecord) -> None:
        vector = self._check_vector(record.vector)
        with self._lock:
            self._vectors[record.id] = normalize(vector)
            self._metadata[record.id] = dict(record.metadata or {})
            self.needs_build = True

    def delete(self, record_id: int) -> bool:
        with self._lock:
            if record_id not in self._vectors:
                return False
            del self._vectors[record_id]
            self._metadata.pop(record_id, None)
            self.needs_build = True
            return True

    def clear(self) -> None:
        with self._lock:
            self._vectors.clear()
            self._metadata.clear()
            self._tree = None
            self._built_ids = []
            self._built_zero_ids = []
            self._built = False
            self.needs_build = False

    def build(self) -> None:
        """Rebuild the tree from every live vector."""
        with self._lock:
            ids = []
            zero_ids = []
            rows = []
            for record_id, vector in self._vectors.items():
                if np.any(vector):
                    ids.append(record_id)
                    rows.append(vector)
                else:
                    zero_ids.append(record_id)

            self._tree = cKDTree(np.vstack(rows), leafsize=self.leaf_size) if rows else None
            self._built_ids = ids
            self._built_zero_ids = zero_ids
            self._built = True
            self.needs_build = False

        logger.log_vector_operation("build", self.collection, details={
            "vectors": len(ids) + len(zero_ids),
            "leaf_size": self.leaf_size
        })

    def search(self, query_vector, top_k: int = 5, threshold: float = 0.0) -> List[QueryResult]:
        query = self._check_query(query_vector)
        if top_k <= 0:
            return []

        with self._lock:
            if self.needs_build and self.auto_build:
                self.build()
            if not self._built:
                return []

            scored = []
            normalized_query = normalize(query)
            if not np.any(normalized_query):
                # Zero query: similarity 0 with everything
                scored = [(record_id, 0.0) for record_id in self._built_ids if record_id in self._vectors]
            elif self._tree is not None:
                # Over-ask by the number of vectors removed since the build
                removed = sum(1 for record_id in self._built_ids if record_id not in self._vectors)
                k = min(len(self._built_ids), top_k + removed)
                distances, rows = self._tree.query(normalized_query, k=k, eps=self.eps)
                for distance, row in zip(np.atleast_1d(distances), np.atleast_1d(rows)):
                    if row >= len(self._built_ids) or not np.isfinite(distance):
                        continue
                    record_id = self._built_ids[row]
                    if record_id not in self._vectors:
                        continue
                    score = float(np.clip(1.0 - (distance ** 2) / 2.0, -1.0, 1.0))
                    scored.append((record_id, score))

            scored.extend((record_id, 0.0) for record_id in self._built_zero_ids if record_id in self._vectors)

            scored.sort(key=lambda item: -item[1])
            results = []
            for record_id, score in scored:
                if score < threshold:
                    break
                results.append(QueryResult(id=record_id, score=score,
                                           metadata=dict(self._metadata.get(record_id, {}))))
                if len(results) >= top_k:
                    break
            return results

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, record_id: int) -> bool:
        return record_id in self._vectors
