"""
Index and vector maintenance - consistency checks and repair.

Indexes are derived data: every entry can be recomputed from the documents
of its table. These routines compare the stored entries with the derived
ones, rebuild them from scratch, and re-register vectors in the engine from
the documents' _vectors field.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from ..util.logging import logger
from .backend import DocumentBackend
from .encoding import decode_document
from .errors import CorruptRecord, MaintenanceError
from .indexing import IndexMaintainer
from .schema import ID_FIELD, TABLE_FIELD, validate_table_name
from .store import collection_name


@dataclass
class MaintenanceReport:
    """Outcome of one maintenance operation on one table."""
    operation: str
    table: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime] = None
    documents: int = 0
    entries: int = 0
    missing_entries: List[Tuple[str, str, int]] = None
    stale_entries: List[Tuple[str, str, int]] = None
    corrupt_records: List[str] = None
    actions_taken: List[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.missing_entries is None:
            self.missing_entries = []
        if self.stale_entries is None:
            self.stale_entries = []
        if self.corrupt_records is None:
            self.corrupt_records = []
        if self.actions_taken is None:
            self.actions_taken = []
        if self.metadata is None:
            self.metadata = {}

    @property
    def issues_found(self) -> int:
        return len(self.missing_entries) + len(self.stale_entries) + len(self.corrupt_records)

    @property
    def consistent(self) -> bool:
        """True when stored index entries equal the ones derived from documents."""
        return not self.missing_entries and not self.stale_entries

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": self.operation,
            "table": self.table,
            "started_at": self.started_at.isoformat(),
            "documents": self.documents,
            "entries": self.entries,
            "issues_found": self.issues_found,
            "missing_entries": [list(item) for item in self.missing_entries],
            "stale_entries": [list(item) for item in self.stale_entries],
            "corrupt_records": self.corrupt_records,
            "actions_taken": self.actions_taken,
            "metadata": self.metadata
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


def _resolve_tables(backend: DocumentBackend, table: Optional[str]) -> List[str]:
    tables = backend.list_tables()
    if table is None:
        return tables
    validate_table_name(table)
    if table not in tables:
        raise MaintenanceError(f"Table not found: {table}")
    return [table]


def check_index_consistency(backend: DocumentBackend, table: str) -> MaintenanceReport:
    """
    Compare stored index entries with the entries derived from documents.

    Returns:
        MaintenanceReport: missing entries (a live document the index does
        not list), stale entries (an id the index lists that no longer has
        that value) and undecodable documents.
    """
    validate_table_name(table)
    report = MaintenanceReport(operation="index_consistency_check", table=table, started_at=datetime.now())

    expected: Dict[Tuple[str, str], Set[int]] = {}
    for doc_id, data in backend.scan_documents(table):
        try:
            document = decode_document(data)
        except CorruptRecord:
            report.corrupt_records.append(f"{table}:{doc_id}")
            continue
        if document.get(TABLE_FIELD, table) != table or document.get(ID_FIELD) is None:
            continue

        report.documents += 1
        for entry in IndexMaintainer.entries_for(document):
            expected.setdefault((entry.field, entry.token), set()).add(int(document[ID_FIELD]))

    actual: Dict[Tuple[str, str], Set[int]] = {}
    for field, token, ids in backend.index_entries(table):
        actual[(field, token)] = set(ids)
        report.entries += 1

    for key, ids in sorted(expected.items()):
        for doc_id in sorted(ids - actual.get(key, set())):
            report.missing_entries.append((key[0], key[1], doc_id))
    for key, ids in sorted(actual.items()):
        for doc_id in sorted(ids - expected.get(key, set())):
            report.stale_entries.append((key[0], key[1], doc_id))

    report.completed_at = datetime.now()
    logger.log_maintenance("check", "consistent" if report.consistent else "inconsistent", {
        "table": table,
        "documents": report.documents,
        "missing": len(report.missing_entries),
        "stale": len(report.stale_entries),
        "corrupt": len(report.corrupt_records)
    })
    return report


def rebuild_indexes(backend: DocumentBackend, table: Optional[str] = None) -> List[MaintenanceReport]:
    """Drop and re-derive the index entries of one table, or of every table."""
    reports = []
    for name in _resolve_tables(backend, table):
        report = MaintenanceReport(operation="index_rebuild", table=name, started_at=datetime.now())
        counts = backend.indexer.rebuild(name)
        report.documents = counts["documents"]
        report.entries = counts["entries"]
        report.actions_taken.append(f"Rebuilt {counts['entries']} index entries from {counts['documents']} documents")
        report.completed_at = datetime.now()

        logger.log_maintenance("rebuild_indexes", "success", {"table": name, **counts})
        reports.append(report)
    return reports


def reload_vectors(store, table: Optional[str] = None) -> List[MaintenanceReport]:
    """Drop a table's collections from the engine and reload them from stored documents."""
    reports = []
    for name in _resolve_tables(store.backend, table):
        report = MaintenanceReport(operation="vector_reload", table=name, started_at=datetime.now())

        for field in store.vector_fields(name):
            store.engine.drop_collection(collection_name(name, field))

        loaded = store.load_vectors(name)
        report.documents = len(store.backend.all_documents(name))
        report.metadata["collections"] = loaded
        report.actions_taken.append(f"Reloaded {sum(loaded.values())} vectors into {len(loaded)} collections")
        report.completed_at = datetime.now()

        logger.log_maintenance("reload_vectors", "success", {"table": name, "collections": loaded})
        reports.append(report)
    return reports
