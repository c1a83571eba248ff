"""
Vector engine - one similarity strategy per process, one store per collection.

Collections are named "<table>_<field>" by the callers and are created
lazily on first use. The strategy is chosen once, at construction.
"""

import threading
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.errors import ConfigurationError, DimensionMismatch
from ..util.logging import logger
from .index import IVectorStore, SimpleInMemoryVectorStore, as_vector
from .types import QueryResult, VectorRecord


class VectorStrategy(str, Enum):
    """Closed set of similarity strategies."""

    SIMPLE = "simple"  # brute-force exact cosine
    TREE = "tree"      # tree-based approximate, needs (re)builds
    FAISS = "faiss"    # normalized flat inner-product index

    @classmethod
    def parse(cls, value) -> "VectorStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown vector engine: {value!r} (expected one of {[s.value for s in cls]})"
            )


class VectorEngine:
    """Per-collection vector storage behind a single strategy."""

    def __init__(self, strategy="simple", dimensions: Optional[Mapping[str, int]] = None,
                 tree_leaf_size: int = 16, tree_eps: float = 0.0, tree_auto_build: bool = True):
        self.strategy = VectorStrategy.parse(strategy)
        self.dimensions: Dict[str, int] = dict(dimensions or {})
        self.tree_leaf_size = tree_leaf_size
        self.tree_eps = tree_eps
        self.tree_auto_build = tree_auto_build
        self._collections: Dict[str, IVectorStore] = {}
        self._lock = threading.RLock()

        if self.strategy is VectorStrategy.FAISS:
            try:
                import faiss  # noqa: F401
            except ImportError as e:
                raise ConfigurationError("Vector engine 'faiss' requires the faiss-cpu package") from e

    def _create_store(self, collection: str) -> IVectorStore:
        dimension = self.dimensions.get(collection)
        if self.strategy is VectorStrategy.SIMPLE:
            return SimpleInMemoryVectorStore(collection, dimension)
        elif self.strategy is VectorStrategy.TREE:
            from .tree_store import TreeVectorStore
            return TreeVectorStore(collection, dimension, leaf_size=self.tree_leaf_size,
                                   eps=self.tree_eps, auto_build=self.tree_auto_build)
        else:
            from .faiss_store import FaissVectorStore
            return FaissVectorStore(collection, dimension)

    def ensure_collection(self, collection: str) -> IVectorStore:
        with self._lock:
            store = self._collections.get(collection)
            if store is None:
                store = self._create_store(collection)
                self._collections[collection] = store
                logger.log_vector_operation("create_collection", collection, details={
                    "strategy": self.strategy.value,
                    "dimension": store.dimension
                })
            return store

    def declare_collection(self, collection: str, dimensions: int) -> None:
        """Fix the dimensionality of a collection before any vector is added."""
        dimensions = int(dimensions)
        with self._lock:
            store = self._collections.get(collection)
            if store is not None and store.dimension is not None and store.dimension != dimensions:
                raise DimensionMismatch(collection, store.dimension, dimensions)
            self.dimensions[collection] = dimensions
            if store is not None and store.dimension is None:
                store.dimension = dimensions

    def collection_dimension(self, collection: str) -> Optional[int]:
        store = self._collections.get(collection)
        if store is not None and store.dimension is not None:
            return store.dimension
        return self.dimensions.get(collection)

    def add_vector(self, collection: str, doc_id: int, vector, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Register or overwrite the vector of a document."""
        store = self.ensure_collection(collection)
        store.add(VectorRecord(id=doc_id, vector=as_vector(vector), metadata=dict(metadata or {})))
        logger.log_vector_operation("added", collection, doc_id, {
            "strategy": self.strategy.value,
            "dimension": store.dimension
        })

    def bulk_add_vectors(self, collection: str, items: Iterable[Mapping[str, Any]]) -> int:
        """Add many vectors given as mappings with id, vector and optional metadata."""
        store = self.ensure_collection(collection)
        records = [
            VectorRecord(id=item["id"], vector=as_vector(item["vector"]), metadata=dict(item.get("metadata") or {}))
            for item in items
        ]
        store.batch_add(records)
        store.build()
        logger.log_vector_operation("bulk_added", collection, details={"count": len(records)})
        return len(records)

    def remove_vector(self, collection: str, doc_id: int) -> bool:
        store = self._collections.get(collection)
        if store is None:
            return False
        removed = store.delete(doc_id)
        if removed:
            logger.log_vector_operation("deleted", collection, doc_id)
        return removed

    def search_similar(self, collection: str, query_vector, limit: int = 10,
                       threshold: float = 0.0) -> List[QueryResult]:
        """Most similar vectors first, at most `limit`, none below `threshold`."""
        store = self._collections.get(collection)
        if store is None:
            # Unknown collection: still reject a query of the wrong size
            declared = self.dimensions.get(collection)
            query = as_vector(query_vector)
            if declared is not None and query.shape[0] != declared:
                raise DimensionMismatch(collection, declared, int(query.shape[0]))
            return []

        results = store.search(query_vector, top_k=int(limit), threshold=float(threshold))
        logger.log_vector_operation("search", collection, details={
            "strategy": self.strategy.value,
            "limit": limit,
            "threshold": threshold,
            "hits": len(results)
        })
        return results

    def rebuild(self, collection: Optional[str] = None) -> None:
        """Rebuild one collection (or all); only matters for the tree strategy."""
        names = [collection] if collection is not None else list(self._collections)
        for name in names:
            store = self._collections.get(name)
            if store is not None:
                store.build()

    def collection_size(self, collection: str) -> int:
        store = self._collections.get(collection)
        return len(store) if store is not None else 0

    def drop_collection(self, collection: str) -> bool:
        with self._lock:
            store = self._collections.pop(collection, None)
        if store is None:
            return False
        store.clear()
        logger.log_vector_operation("drop_collection", collection)
        return True

    def collections(self) -> List[str]:
        return sorted(self._collections)
