"""
Normalized flat vector store backed by FAISS.

Vectors are L2-normalized once, at insertion, and kept in an inner-product
flat index, so a query is one exact O(n) batch of dot products.
"""

from typing import List, Optional

import numpy as np

from .index import IVectorStore, normalize
from .types import QueryResult, VectorRecord


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore (IndexFlatIP behind an id map)."""

    def __init__(self, collection: str = "default", dimension: Optional[int] = None):
        """
        Initialize FAISS vector store.

        Args:
            collection: Name of the collection this store serves
            dimension: Dimension of the vectors; fixed by the first vector when omitted
        """
        super().__init__(collection, dimension)
        try:
            import faiss
            self.faiss = faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

        self.index = None
        self._metadata = {}  # record_id -> metadata
        if dimension is not None:
            self._create_index(dimension)

    def _create_index(self, dimension: int) -> None:
        # Inner product on normalized vectors is cosine similarity
        self.index = self.faiss.IndexIDMap2(self.faiss.IndexFlatIP(dimension))

    def add(self, record: VectorRecord) -> None:
        """Add or overwrite a single vector record."""
        vector = self._check_vector(record.vector)
        if self.index is None:
            self._create_index(self.dimension)

        record_id = int(record.id)
        if record_id in self._metadata:
            self._remove_ids([record_id])

        vector_array = np.asarray(normalize(vector), dtype=np.float32).reshape(1, -1)
        self.index.add_with_ids(vector_array, np.array([record_id], dtype=np.int64))
        self._metadata[record_id] = dict(record.metadata or {})

    def batch_add(self, records) -> None:
        """Add multiple vector records with a single index insertion."""
        records = list(records)
        if not records:
            return

        latest = {}
        for record in records:
            latest[int(record.id)] = (self._check_vector(record.vector), record.metadata)
        if self.index is None:
            self._create_index(self.dimension)

        existing = [record_id for record_id in latest if record_id in self._metadata]
        if existing:
            self._remove_ids(existing)

        ids = list(latest)
        batch_vectors = np.vstack([normalize(latest[record_id][0]) for record_id in ids]).astype(np.float32)
        self.index.add_with_ids(batch_vectors, np.array(ids, dtype=np.int64))
        for record_id in ids:
            self._metadata[record_id] = dict(latest[record_id][1] or {})

    def search(self, query_vector, top_k: int = 5, threshold: float = 0.0) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        query = self._check_query(query_vector)
        if self.index is None or not self.index.ntotal or top_k <= 0:
            return []

        query_array = np.asarray(normalize(query), dtype=np.float32).reshape(1, -1)
        scores, indices = self.index.search(query_array, min(top_k, self.index.ntotal))

        query_results = []
        for score, record_id in zip(scores[0], indices[0]):
            if record_id < 0:
                continue
            score = float(np.clip(score, -1.0, 1.0))
            if score < threshold:
                break
            query_results.append(QueryResult(
                id=int(record_id),
                score=score,
                metadata=dict(self._metadata.get(int(record_id), {}))
            ))
        return query_results

    def _remove_ids(self, record_ids) -> int:
        return int(self.index.remove_ids(np.array(list(record_ids), dtype=np.int64)))

    def delete(self, record_id: int) -> bool:
        """Delete a vector record by id."""
        record_id = int(record_id)
        if record_id not in self._metadata:
            return False
        self._remove_ids([record_id])
        del self._metadata[record_id]
        return True

    def clear(self) -> None:
        """Clear all records from the FAISS store."""
        if self.index is not None:
            self.index.reset()
        self._metadata.clear()

    def __len__(self) -> int:
        return len(self._metadata)

    def __contains__(self, record_id: int) -> bool:
        return int(record_id) in self._metadata
