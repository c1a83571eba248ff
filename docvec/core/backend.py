"""
Document storage contract shared by the file and key-value backends.

Subclasses provide raw byte-level primitives (documents, index entries,
metadata). This base class implements put/get/delete/find on top of them so
that both backends encode, index and filter identically.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..util.logging import logger
from .conditions import (
    MEMBERSHIP_OPERATOR,
    is_operator_map,
    matches_conditions,
    normalize_conditions,
)
from .encoding import decode_document, encode_document
from .errors import CorruptRecord
from .indexing import IndexMaintainer, is_indexable_field
from .schema import ID_FIELD, TABLE_FIELD, is_scalar, validate_table_name

NEXT_ID_KEY = "next_id"


def coerce_id(doc_id: Any) -> Optional[int]:
    """Integer form of a document id, or None when it cannot be one. Ids start at 1."""
    if isinstance(doc_id, bool):
        return None
    if isinstance(doc_id, str) and doc_id.strip().isdigit():
        doc_id = int(doc_id.strip())
    if isinstance(doc_id, int) and doc_id >= 1:
        return doc_id
    return None


class DocumentBackend(ABC):
    """Abstract document backend."""

    name = "abstract"

    def __init__(self):
        self.indexer = IndexMaintainer(self)

    # -- primitives ---------------------------------------------------------

    @abstractmethod
    def _read_document(self, table: str, doc_id: int) -> Optional[bytes]:
        """Raw stored bytes of a document, None when absent."""
        pass

    @abstractmethod
    def _write_document(self, table: str, doc_id: int, data: bytes) -> None:
        """Atomically replace the stored bytes of a document."""
        pass

    @abstractmethod
    def _remove_document(self, table: str, doc_id: int) -> None:
        pass

    @abstractmethod
    def _scan_documents(self, table: str) -> Iterator[Tuple[int, bytes]]:
        """Yield (id, raw bytes) for every stored document of a table."""
        pass

    @abstractmethod
    def read_index_ids(self, table: str, field: str, token: str) -> List[int]:
        """Id-list of an index entry; missing or corrupt entries read as empty."""
        pass

    @abstractmethod
    def write_index_ids(self, table: str, field: str, token: str, ids: List[int]) -> None:
        pass

    @abstractmethod
    def delete_index_entry(self, table: str, field: str, token: str) -> None:
        pass

    @abstractmethod
    def index_entries(self, table: str) -> Iterator[Tuple[str, str, List[int]]]:
        """Yield (field, token, ids) for every stored index entry of a table."""
        pass

    @abstractmethod
    def clear_indexes(self, table: str) -> None:
        pass

    @abstractmethod
    def get_metadata(self, table: str, key: str) -> Any:
        pass

    @abstractmethod
    def set_metadata(self, table: str, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete_metadata(self, table: str, key: Optional[str] = None) -> None:
        """Delete one metadata key, or all metadata of the table when key is None."""
        pass

    @abstractmethod
    def list_tables(self) -> List[str]:
        pass

    @abstractmethod
    def size(self) -> int:
        """Approximate number of stored documents (diagnostics only)."""
        pass

    @contextmanager
    def _transaction(self):
        """Group several primitive writes. No-op unless the backend supports it."""
        yield

    def compact(self) -> None:
        pass

    def close(self) -> None:
        pass

    # -- document contract --------------------------------------------------

    def put(self, table: str, doc_id: Any, document: Mapping[str, Any]) -> Dict[str, Any]:
        """Store a document under (table, id), overwriting and re-indexing."""
        validate_table_name(table)
        doc_id_int = coerce_id(doc_id)
        if doc_id_int is None:
            raise ValueError(f"Document id must be a positive integer, got {doc_id!r}")

        stored = dict(document)
        stored[ID_FIELD] = doc_id_int
        stored[TABLE_FIELD] = table
        data = encode_document(stored)

        with self._transaction():
            previous = self.get(table, doc_id_int)
            self._write_document(table, doc_id_int, data)
            self.indexer.index_document(table, doc_id_int, stored, previous)
            self._bump_counter(table, doc_id_int)

        logger.log_document_operation("put", table, doc_id_int, details={
            "backend": self.name,
            "operation": "update" if previous is not None else "create"
        })
        return stored

    def get(self, table: str, doc_id: Any) -> Optional[Dict[str, Any]]:
        validate_table_name(table)
        doc_id_int = coerce_id(doc_id)
        if doc_id_int is None:
            return None

        data = self._read_document(table, doc_id_int)
        if data is None:
            return None
        try:
            return decode_document(data)
        except CorruptRecord as e:
            logger.log_corrupt_record(f"{table}:{doc_id_int}", e)
            return None

    def delete(self, table: str, doc_id: Any) -> Optional[Dict[str, Any]]:
        """Remove a document and its index entries; returns it, or None if absent."""
        document = self.get(table, doc_id)
        if document is None:
            return None

        doc_id_int = coerce_id(doc_id)
        with self._transaction():
            self._remove_document(table, doc_id_int)
            self.indexer.unindex_document(table, doc_id_int, document)

        logger.log_document_operation("delete", table, doc_id_int, details={"backend": self.name})
        return document

    def find(self, table: str, conditions: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Documents of a table matching all conditions.

        Equality and includes clauses are answered from the index with the
        shortest id-list; every candidate is then checked against all
        conditions in memory. Range-only conditions scan the table.
        """
        validate_table_name(table)
        conditions = normalize_conditions(conditions)
        if not conditions:
            return self.all_documents(table)

        candidate_ids = self._most_selective_ids(table, conditions)
        if candidate_ids is None:
            documents = self.all_documents(table)
        else:
            documents = []
            for doc_id in candidate_ids:
                document = self.get(table, doc_id)
                if document is not None:
                    documents.append(document)

        return [doc for doc in documents if matches_conditions(doc, conditions)]

    def all_documents(self, table: str) -> List[Dict[str, Any]]:
        """Full table scan, ascending id. Corrupt records are skipped."""
        validate_table_name(table)
        documents = []
        for doc_id, data in self._scan_documents(table):
            try:
                document = decode_document(data)
            except CorruptRecord as e:
                logger.log_corrupt_record(f"{table}:{doc_id}", e)
                continue
            # Co-mingled stores: only keep documents owned by this table
            if document.get(TABLE_FIELD, table) != table or document.get(ID_FIELD) is None:
                continue
            documents.append(document)

        documents.sort(key=lambda doc: doc[ID_FIELD])
        return documents

    def scan_documents(self, table: str) -> Iterator[Tuple[int, bytes]]:
        """Raw (id, bytes) pairs, undecoded, for integrity checks."""
        validate_table_name(table)
        return self._scan_documents(table)

    def next_id(self, table: str) -> int:
        """Allocate the next id; ids are never reused after deletion."""
        validate_table_name(table)
        with self._transaction():
            current = self.get_metadata(table, NEXT_ID_KEY)
            if current is None:
                current = self._max_document_id(table) + 1
            allocated = int(current)
            self.set_metadata(table, NEXT_ID_KEY, allocated + 1)
        return allocated

    def drop_table(self, table: str) -> int:
        """Delete every document, index entry and metadata key of a table."""
        validate_table_name(table)
        removed = 0
        with self._transaction():
            for doc_id, _ in list(self._scan_documents(table)):
                self._remove_document(table, doc_id)
                removed += 1
            self.clear_indexes(table)
            self.delete_metadata(table)

        logger.log_document_operation("drop_table", table, details={"backend": self.name, "removed": removed})
        return removed

    def _max_document_id(self, table: str) -> int:
        highest = 0
        for doc_id, _ in self._scan_documents(table):
            highest = max(highest, doc_id)
        return highest

    def _bump_counter(self, table: str, doc_id: int) -> None:
        current = self.get_metadata(table, NEXT_ID_KEY)
        if current is None:
            self.set_metadata(table, NEXT_ID_KEY, max(self._max_document_id(table), doc_id) + 1)
        elif int(current) <= doc_id:
            self.set_metadata(table, NEXT_ID_KEY, doc_id + 1)

    def _most_selective_ids(self, table: str, conditions: Dict[str, Any]) -> Optional[List[int]]:
        """Shortest index id-list among usable clauses, None if no clause is indexable."""
        best: Optional[List[int]] = None
        for field, expected in conditions.items():
            if not is_indexable_field(field):
                continue
            if is_operator_map(expected):
                operand = expected.get(MEMBERSHIP_OPERATOR)
                if MEMBERSHIP_OPERATOR not in expected or not is_scalar(operand):
                    continue
                ids = self.indexer.lookup_includes(table, field, operand)
            elif is_scalar(expected):
                ids = self.indexer.lookup(table, field, expected)
            else:
                continue

            if best is None or len(ids) < len(best):
                best = ids
            if not best:
                break
        return best
