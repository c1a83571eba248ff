"""
Store - the explicit storage handle.

A Store owns one document backend and one vector engine, both injected by
the caller (or resolved once from the environment by Store.from_config).
Writers are serialized per table: id allocation, the document write and
the vector upkeep of one save happen under that table's lock.
"""

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Set

from ..util.logging import logger
from ..vector.index import as_vector
from . import config
from .backend import NEXT_ID_KEY, DocumentBackend, coerce_id
from .errors import ConcurrencyHazard, DimensionMismatch, RecordNotFound
from .schema import ID_FIELD, VECTORS_FIELD, Document, validate_table_name

VECTOR_DIMENSIONS_KEY = "vector_dimensions"


def collection_name(table: str, field: str) -> str:
    return f"{table}_{field}"


class Store:
    """Document storage plus vector similarity behind one handle."""

    def __init__(self, backend: DocumentBackend, engine, hybrid_overfetch: Optional[int] = None,
                 similarity_limit: Optional[int] = None):
        self.backend = backend
        self.engine = engine
        self.hybrid_overfetch = hybrid_overfetch
        self.similarity_limit = similarity_limit

        self._table_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, backend_kind: Optional[str] = None, path: Optional[str] = None,
                    vector_engine: Optional[str] = None, load_vectors: bool = True) -> "Store":
        """Build a store from DOCVEC_* settings; explicit arguments win."""
        if config.debug_enabled():
            logger.logger.setLevel(logging.DEBUG)

        backend = config.get_document_backend(backend_kind, path)
        engine = config.get_vector_engine(vector_engine)
        store = cls(backend, engine,
                    hybrid_overfetch=config.get_hybrid_overfetch(),
                    similarity_limit=config.get_similarity_limit())

        logger.log_operation("store.open", "success", {
            "backend": backend.name,
            "vector_engine": engine.strategy.value
        })
        if load_vectors:
            store.load_vectors()
        return store

    def _lock_for(self, table: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._table_locks.get(table)
            if lock is None:
                lock = threading.RLock()
                self._table_locks[table] = lock
            return lock

    # -- storage passthroughs -----------------------------------------------

    def put(self, table: str, doc_id: Any, document: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock_for(table):
            return self.backend.put(table, doc_id, document)

    def get(self, table: str, doc_id: Any) -> Optional[Dict[str, Any]]:
        return self.backend.get(table, doc_id)

    def delete(self, table: str, doc_id: Any) -> Optional[Dict[str, Any]]:
        with self._lock_for(table):
            return self.backend.delete(table, doc_id)

    def find(self, table: str, conditions: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        return self.backend.find(table, conditions)

    def size(self) -> int:
        return self.backend.size()

    # -- vector passthroughs ------------------------------------------------

    def add_vector(self, collection: str, doc_id: int, vector, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.engine.add_vector(collection, doc_id, vector, metadata)

    def remove_vector(self, collection: str, doc_id: int) -> bool:
        return self.engine.remove_vector(collection, doc_id)

    def search_similar(self, collection: str, query_vector, limit: int = 10, threshold: float = 0.0):
        return self.engine.search_similar(collection, query_vector, limit=limit, threshold=threshold)

    # -- model-facing protocol ----------------------------------------------

    def declare_vector_field(self, table: str, field: str, dimensions: int) -> None:
        """Fix the dimensionality of a table's vector field; persisted as table metadata."""
        validate_table_name(table)
        with self._lock_for(table):
            self.engine.declare_collection(collection_name(table, field), dimensions)
            declared = dict(self.backend.get_metadata(table, VECTOR_DIMENSIONS_KEY) or {})
            declared[field] = int(dimensions)
            self.backend.set_metadata(table, VECTOR_DIMENSIONS_KEY, declared)

    def _check_dimensions(self, table: str, field: str, vector: List[float]) -> None:
        collection = collection_name(table, field)
        expected = self.engine.collection_dimension(collection)
        if expected is not None and len(vector) != expected:
            raise DimensionMismatch(collection, expected, len(vector))

    def save(self, table: str, document: Mapping[str, Any],
             vectors: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Create or update a document and its vectors.

        A document without an id gets the next id of the table; one with an
        id must already exist. `vectors` maps field name to a vector, or to
        None to clear that field's vector. A _vectors map carried by the
        document is applied the same way, with `vectors` taking precedence.

        Raises:
            RecordNotFound: the document carries an id that is not stored
            ConcurrencyHazard: the allocated id is already taken
            DimensionMismatch: a vector does not fit its collection
        """
        validate_table_name(table)
        data = document.to_dict() if isinstance(document, Document) else dict(document)
        requested = dict(data.pop(VECTORS_FIELD, None) or {})
        requested.update(vectors or {})
        updates = {field: (None if vector is None else as_vector(vector).tolist())
                   for field, vector in requested.items()}

        with self._lock_for(table):
            if data.get(ID_FIELD) is None:
                doc_id = self.backend.next_id(table)
                if self.backend.get(table, doc_id) is not None:
                    raise ConcurrencyHazard(f"Id {doc_id} of '{table}' was taken by another writer")
                previous = None
            else:
                doc_id = coerce_id(data[ID_FIELD])
                if doc_id is None:
                    raise ValueError(f"Document id must be a positive integer, got {data[ID_FIELD]!r}")
                previous = self.backend.get(table, doc_id)
                if previous is None:
                    raise RecordNotFound(table, doc_id)

            stored_vectors = dict((previous or {}).get(VECTORS_FIELD) or {})
            for field, vector in updates.items():
                if vector is None:
                    stored_vectors.pop(field, None)
                else:
                    self._check_dimensions(table, field, vector)
                    stored_vectors[field] = vector

            if stored_vectors:
                data[VECTORS_FIELD] = stored_vectors
            else:
                data.pop(VECTORS_FIELD, None)

            stored = self.backend.put(table, doc_id, data)

            for field, vector in updates.items():
                if vector is None:
                    self.engine.remove_vector(collection_name(table, field), doc_id)
                else:
                    self.engine.add_vector(collection_name(table, field), doc_id, vector, {"table": table})

        return stored

    def destroy(self, table: str, doc_id: Any) -> Optional[Dict[str, Any]]:
        """Delete a document and every vector it owns; None when absent."""
        with self._lock_for(table):
            document = self.backend.delete(table, doc_id)
            if document is None:
                return None

            fields = set(document.get(VECTORS_FIELD) or {})
            fields.update(self.backend.get_metadata(table, VECTOR_DIMENSIONS_KEY) or {})
            for field in fields:
                self.engine.remove_vector(collection_name(table, field), document[ID_FIELD])
        return document

    def vector_fields(self, table: str) -> Set[str]:
        """Fields of a table that carry vectors: declared ones plus those found in documents."""
        fields = set(self.backend.get_metadata(table, VECTOR_DIMENSIONS_KEY) or {})
        for document in self.backend.all_documents(table):
            fields.update(document.get(VECTORS_FIELD) or {})
        return fields

    def find_by_id(self, table: str, doc_id: Any) -> Document:
        data = self.backend.get(table, doc_id)
        if data is None:
            raise RecordNotFound(table, doc_id)
        return Document(data)

    def load_vectors(self, table: Optional[str] = None) -> Dict[str, int]:
        """Re-register the vectors stored in documents' _vectors field; returns counts per collection."""
        tables = [validate_table_name(table)] if table is not None else self.backend.list_tables()
        loaded: Dict[str, int] = {}

        for name in tables:
            with self._lock_for(name):
                declared = self.backend.get_metadata(name, VECTOR_DIMENSIONS_KEY) or {}
                for field, dimensions in declared.items():
                    self.engine.declare_collection(collection_name(name, field), dimensions)

                items: Dict[str, List[Dict[str, Any]]] = {}
                for document in self.backend.all_documents(name):
                    for field, vector in (document.get(VECTORS_FIELD) or {}).items():
                        if vector is None:
                            continue
                        items.setdefault(collection_name(name, field), []).append({
                            "id": document[ID_FIELD],
                            "vector": vector,
                            "metadata": {"table": name}
                        })

                for collection, batch in items.items():
                    loaded[collection] = self.engine.bulk_add_vectors(collection, batch)

        if loaded:
            logger.log_operation("store.load_vectors", "success", loaded)
        return loaded

    # -- query builders -----------------------------------------------------

    def query(self, table: str):
        from ..query.builder import QueryBuilder
        return QueryBuilder(self.backend, self.engine, table,
                            hybrid_overfetch=self.hybrid_overfetch,
                            similarity_limit=self.similarity_limit)

    def where(self, table: str, conditions: Optional[Mapping[str, Any]] = None, **fields):
        return self.query(table).where(conditions, **fields)

    def similar_to(self, table: str, vector, **options):
        return self.query(table).similar_to(vector, **options)

    # -- lifecycle ----------------------------------------------------------

    def stats(self, table: Optional[str] = None) -> Dict[str, Any]:
        """Document and vector counts, per table."""
        tables = [validate_table_name(table)] if table is not None else self.backend.list_tables()
        per_table = {}
        for name in tables:
            per_table[name] = {
                "documents": len(self.backend.all_documents(name)),
                "next_id": self.backend.get_metadata(name, NEXT_ID_KEY),
                "collections": {
                    collection_name(name, field): self.engine.collection_size(collection_name(name, field))
                    for field in sorted(self.vector_fields(name))
                }
            }

        return {
            "backend": self.backend.name,
            "vector_engine": self.engine.strategy.value,
            "documents": self.backend.size(),
            "tables": per_table
        }

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
