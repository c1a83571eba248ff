"""
Key-value backend - documents, indexes and metadata as encoded blobs in one
embedded SQLite key-value table.

Key layout:
    doc:<table>:<id>               document
    idx:<table>:<field>:<value>    index id-list
    meta:<table>:<key>             per-table metadata (next id, hints)

A put writes the document and all of its index rows in one transaction.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple, Union

from ..util.logging import logger
from .backend import DocumentBackend
from .config import get_db_path
from .db import connect, prefix_bounds
from .encoding import decode_ids, decode_value, encode_ids, encode_value
from .errors import CorruptRecord
from .schema import validate_table_name

DOC_PREFIX = "doc"
INDEX_PREFIX = "idx"
META_PREFIX = "meta"


def document_key(table: str, doc_id: int) -> str:
    return f"{DOC_PREFIX}:{table}:{doc_id}"


def index_key(table: str, field: str, token: str) -> str:
    return f"{INDEX_PREFIX}:{table}:{field}:{token}"


def metadata_key(table: str, key: str) -> str:
    return f"{META_PREFIX}:{table}:{key}"


class KVBackend(DocumentBackend):
    """Single embedded key-value store holding documents and indexes."""

    name = "kv"

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        super().__init__()
        self.db_path = str(db_path) if db_path is not None else get_db_path()
        self._lock = threading.RLock()
        self._depth = 0
        try:
            self._conn = connect(self.db_path)
        except sqlite3.Error as e:
            raise RuntimeError(f"Failed to open key-value store at {self.db_path}: {e}") from e

    # -- low level ----------------------------------------------------------

    @contextmanager
    def _transaction(self):
        with self._lock:
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self._conn.rollback()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    self._conn.commit()

    def _get(self, key: str) -> Optional[bytes]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def _put(self, key: str, value: bytes) -> None:
        with self._transaction():
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, sqlite3.Binary(value))
            )

    def _delete(self, key: str) -> None:
        with self._transaction():
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def _scan_prefix(self, prefix: str) -> List[Tuple[str, bytes]]:
        lower, upper = prefix_bounds(prefix)
        with self._lock:
            rows = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? AND key < ? ORDER BY key",
                (lower, upper)
            ).fetchall()
        return [(key, bytes(value)) for key, value in rows]

    def _delete_prefix(self, prefix: str) -> None:
        lower, upper = prefix_bounds(prefix)
        with self._transaction():
            self._conn.execute("DELETE FROM kv WHERE key >= ? AND key < ?", (lower, upper))

    # -- documents ----------------------------------------------------------

    def _read_document(self, table: str, doc_id: int) -> Optional[bytes]:
        return self._get(document_key(table, doc_id))

    def _write_document(self, table: str, doc_id: int, data: bytes) -> None:
        self._put(document_key(table, doc_id), data)

    def _remove_document(self, table: str, doc_id: int) -> None:
        self._delete(document_key(table, doc_id))

    def _scan_documents(self, table: str) -> Iterator[Tuple[int, bytes]]:
        prefix = f"{DOC_PREFIX}:{validate_table_name(table)}:"
        for key, value in self._scan_prefix(prefix):
            suffix = key[len(prefix):]
            if not suffix.isdigit():
                continue
            yield int(suffix), value

    # -- indexes ------------------------------------------------------------

    def read_index_ids(self, table: str, field: str, token: str) -> List[int]:
        key = index_key(table, field, token)
        data = self._get(key)
        if data is None:
            return []
        try:
            return decode_ids(data)
        except CorruptRecord as e:
            logger.log_corrupt_record(key, e)
            return []

    def write_index_ids(self, table: str, field: str, token: str, ids: List[int]) -> None:
        self._put(index_key(table, field, token), encode_ids(ids))

    def delete_index_entry(self, table: str, field: str, token: str) -> None:
        self._delete(index_key(table, field, token))

    def index_entries(self, table: str) -> Iterator[Tuple[str, str, List[int]]]:
        prefix = f"{INDEX_PREFIX}:{validate_table_name(table)}:"
        for key, value in self._scan_prefix(prefix):
            rest = key[len(prefix):]
            if ":" not in rest:
                continue
            field, token = rest.split(":", 1)
            try:
                ids = decode_ids(value)
            except CorruptRecord as e:
                logger.log_corrupt_record(key, e)
                continue
            yield field, token, ids

    def clear_indexes(self, table: str) -> None:
        self._delete_prefix(f"{INDEX_PREFIX}:{validate_table_name(table)}:")

    # -- metadata -----------------------------------------------------------

    def get_metadata(self, table: str, key: str) -> Any:
        meta_key = metadata_key(table, key)
        data = self._get(meta_key)
        if data is None:
            return None
        try:
            return decode_value(data)
        except CorruptRecord as e:
            logger.log_corrupt_record(meta_key, e)
            return None

    def set_metadata(self, table: str, key: str, value: Any) -> None:
        self._put(metadata_key(table, key), encode_value(value))

    def delete_metadata(self, table: str, key: Optional[str] = None) -> None:
        if key is None:
            self._delete_prefix(f"{META_PREFIX}:{validate_table_name(table)}:")
        else:
            self._delete(metadata_key(table, key))

    # -- management ---------------------------------------------------------

    def list_tables(self) -> List[str]:
        tables = set()
        for prefix in (DOC_PREFIX, META_PREFIX):
            lower, upper = prefix_bounds(f"{prefix}:")
            with self._lock:
                rows = self._conn.execute(
                    "SELECT key FROM kv WHERE key >= ? AND key < ?", (lower, upper)
                ).fetchall()
            for (key,) in rows:
                parts = key.split(":")
                if len(parts) >= 3:
                    tables.add(parts[1])
        return sorted(tables)

    def size(self) -> int:
        lower, upper = prefix_bounds(f"{DOC_PREFIX}:")
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM kv WHERE key >= ? AND key < ?", (lower, upper)
            ).fetchone()
        return int(row[0])

    def compact(self) -> None:
        with self._lock:
            self._conn.commit()
            self._conn.execute("VACUUM")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def connected(self) -> bool:
        return self._conn is not None
