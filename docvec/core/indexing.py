"""
Index Maintainer - derives secondary index entries from documents and keeps
them in step with every write and delete.

Scalar fields get one equality entry (table, field, value) -> ids.
Array fields get one membership entry per element under field + "_includes".
Range conditions are never answered from an index; the backend scans.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Set

from ..util.logging import logger
from .schema import INCLUDES_SUFFIX, IndexEntry, index_token, is_scalar

if TYPE_CHECKING:
    from .backend import DocumentBackend


def is_indexable_field(field: str) -> bool:
    """Bookkeeping fields, dotted paths and key-unsafe names are scan-only."""
    return bool(field) and not field.startswith("_") and ":" not in field and "." not in field


class IndexMaintainer:
    """Index upkeep shared by every backend through its index primitives."""

    def __init__(self, backend: "DocumentBackend"):
        self.backend = backend

    @staticmethod
    def entries_for(document: Mapping[str, Any]) -> Set[IndexEntry]:
        """All index entries a document contributes, as a set."""
        entries = set()
        for field, value in document.items():
            if not is_indexable_field(field):
                continue
            if is_scalar(value):
                entries.add(IndexEntry(field, index_token(value)))
            elif isinstance(value, (list, tuple)):
                for item in value:
                    if is_scalar(item):
                        entries.add(IndexEntry(field + INCLUDES_SUFFIX, index_token(item)))
        return entries

    def index_document(self, table: str, doc_id: int, document: Mapping[str, Any],
                       previous: Optional[Mapping[str, Any]] = None) -> None:
        """Bring the index in line with `document`, dropping entries only `previous` had."""
        new_entries = self.entries_for(document)
        old_entries = self.entries_for(previous) if previous is not None else set()

        for entry in old_entries - new_entries:
            self.remove_entry(table, entry, doc_id)
        for entry in new_entries - old_entries:
            self.add_entry(table, entry, doc_id)

    def unindex_document(self, table: str, doc_id: int, document: Mapping[str, Any]) -> None:
        for entry in self.entries_for(document):
            self.remove_entry(table, entry, doc_id)

    def add_entry(self, table: str, entry: IndexEntry, doc_id: int) -> None:
        ids = self.backend.read_index_ids(table, entry.field, entry.token)
        if doc_id in ids:
            return
        ids.append(doc_id)
        ids.sort()
        self.backend.write_index_ids(table, entry.field, entry.token, ids)
        logger.log_index_operation("add", table, entry.field, entry.token, details={"id": doc_id})

    def remove_entry(self, table: str, entry: IndexEntry, doc_id: int) -> None:
        ids = self.backend.read_index_ids(table, entry.field, entry.token)
        if doc_id not in ids:
            return
        ids = [i for i in ids if i != doc_id]
        if ids:
            self.backend.write_index_ids(table, entry.field, entry.token, ids)
        else:
            # Empty entries are deleted, not kept as empty records
            self.backend.delete_index_entry(table, entry.field, entry.token)
        logger.log_index_operation("remove", table, entry.field, entry.token, details={"id": doc_id})

    def lookup(self, table: str, field: str, value: Any) -> List[int]:
        """Ids whose scalar `field` equals `value` (may include token collisions)."""
        if not is_indexable_field(field) or not is_scalar(value):
            return []
        return self.backend.read_index_ids(table, field, index_token(value))

    def lookup_includes(self, table: str, field: str, value: Any) -> List[int]:
        """Ids whose array `field` contains `value`."""
        if not is_indexable_field(field) or not is_scalar(value):
            return []
        return self.backend.read_index_ids(table, field + INCLUDES_SUFFIX, index_token(value))

    def rebuild(self, table: str) -> Dict[str, int]:
        """Drop every entry of `table` and re-derive them from its documents."""
        documents = 0
        entries = 0
        with self.backend._transaction():
            self.backend.clear_indexes(table)
            for document in self.backend.all_documents(table):
                doc_id = document.get("id")
                if doc_id is None:
                    continue
                for entry in self.entries_for(document):
                    self.add_entry(table, entry, int(doc_id))
                    entries += 1
                documents += 1
        return {"documents": documents, "entries": entries}
