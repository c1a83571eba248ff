"""
File backend - one JSON file per document plus one small file per index entry.

Layout under the data directory:

    <table>/<id>.json                     documents
    <table>/indexes/<field>/<value>.idx   index entries (field, value, ids)
    <table>/meta/<key>.json               per-table metadata (next id, hints)

Field and value path components are sanitized and suffixed with a short
digest of the original text, so distinct values never share a file.
"""

import hashlib
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple, Union

from ..util.logging import logger
from .backend import DocumentBackend
from .config import ensure_data_directory, get_data_dir
from .encoding import decode_value, encode_value
from .errors import CorruptRecord
from .schema import validate_table_name

INDEX_DIR = "indexes"
META_DIR = "meta"


def _safe_component(text: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", text)[:64]
    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()[:10]
    return f"{safe}-{digest}"


def _atomic_write(path: Path, data: bytes) -> None:
    """Write to a temp file in the same directory, then rename over the target."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


class FileBackend(DocumentBackend):
    """File-per-document storage with derived index files."""

    name = "file"

    def __init__(self, data_dir: Optional[Union[str, Path]] = None):
        super().__init__()
        self.data_dir = Path(data_dir) if data_dir is not None else Path(get_data_dir())
        ensure_data_directory(self.data_dir)

    # -- paths --------------------------------------------------------------

    def _table_dir(self, table: str) -> Path:
        return self.data_dir / validate_table_name(table)

    def _document_path(self, table: str, doc_id: int) -> Path:
        return self._table_dir(table) / f"{doc_id}.json"

    def _index_dir(self, table: str) -> Path:
        return self._table_dir(table) / INDEX_DIR

    def _index_path(self, table: str, field: str, token: str) -> Path:
        return self._index_dir(table) / _safe_component(field) / f"{_safe_component(token)}.idx"

    def _meta_path(self, table: str, key: str) -> Path:
        safe_key = re.sub(r"[^A-Za-z0-9._-]", "_", key)
        return self._table_dir(table) / META_DIR / f"{safe_key}.json"

    # -- documents ----------------------------------------------------------

    def _read_document(self, table: str, doc_id: int) -> Optional[bytes]:
        path = self._document_path(table, doc_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _write_document(self, table: str, doc_id: int, data: bytes) -> None:
        _atomic_write(self._document_path(table, doc_id), data)

    def _remove_document(self, table: str, doc_id: int) -> None:
        path = self._document_path(table, doc_id)
        if path.exists():
            path.unlink()

    def _scan_documents(self, table: str) -> Iterator[Tuple[int, bytes]]:
        table_dir = self._table_dir(table)
        if not table_dir.is_dir():
            return
        for path in table_dir.glob("*.json"):
            if not path.stem.isdigit():
                continue
            try:
                data = path.read_bytes()
            except OSError as e:
                logger.log_corrupt_record(str(path), e)
                continue
            yield int(path.stem), data

    # -- indexes ------------------------------------------------------------

    def _read_index_file(self, path: Path) -> Optional[dict]:
        try:
            entry = decode_value(path.read_bytes())
        except FileNotFoundError:
            return None
        except (CorruptRecord, OSError) as e:
            logger.log_corrupt_record(str(path), e)
            return None

        if not isinstance(entry, dict) or not isinstance(entry.get("ids"), list):
            logger.log_corrupt_record(str(path), CorruptRecord("index file without id list"))
            return None
        return entry

    def read_index_ids(self, table: str, field: str, token: str) -> List[int]:
        entry = self._read_index_file(self._index_path(table, field, token))
        if entry is None:
            return []
        try:
            return [int(i) for i in entry["ids"]]
        except (TypeError, ValueError) as e:
            logger.log_corrupt_record(f"{table}:{field}:{token}", e)
            return []

    def write_index_ids(self, table: str, field: str, token: str, ids: List[int]) -> None:
        entry = {"field": field, "value": token, "ids": list(ids)}
        _atomic_write(self._index_path(table, field, token), encode_value(entry))

    def delete_index_entry(self, table: str, field: str, token: str) -> None:
        path = self._index_path(table, field, token)
        if path.exists():
            path.unlink()
        # Drop the field directory once its last entry is gone
        try:
            path.parent.rmdir()
        except OSError:
            pass

    def index_entries(self, table: str) -> Iterator[Tuple[str, str, List[int]]]:
        index_dir = self._index_dir(table)
        if not index_dir.is_dir():
            return
        for path in sorted(index_dir.rglob("*.idx")):
            entry = self._read_index_file(path)
            if entry is None:
                continue
            try:
                ids = [int(i) for i in entry["ids"]]
            except (TypeError, ValueError) as e:
                logger.log_corrupt_record(str(path), e)
                continue
            yield str(entry.get("field")), str(entry.get("value")), ids

    def clear_indexes(self, table: str) -> None:
        index_dir = self._index_dir(table)
        if index_dir.is_dir():
            shutil.rmtree(index_dir)

    # -- metadata -----------------------------------------------------------

    def get_metadata(self, table: str, key: str) -> Any:
        path = self._meta_path(table, key)
        try:
            return decode_value(path.read_bytes())
        except FileNotFoundError:
            return None
        except CorruptRecord as e:
            logger.log_corrupt_record(str(path), e)
            return None

    def set_metadata(self, table: str, key: str, value: Any) -> None:
        _atomic_write(self._meta_path(table, key), encode_value(value))

    def delete_metadata(self, table: str, key: Optional[str] = None) -> None:
        if key is None:
            meta_dir = self._table_dir(table) / META_DIR
            if meta_dir.is_dir():
                shutil.rmtree(meta_dir)
            return
        path = self._meta_path(table, key)
        if path.exists():
            path.unlink()

    # -- management ---------------------------------------------------------

    def list_tables(self) -> List[str]:
        if not self.data_dir.is_dir():
            return []
        tables = []
        for path in sorted(self.data_dir.iterdir()):
            if not path.is_dir() or path.name.startswith("."):
                continue
            has_documents = any(p.stem.isdigit() for p in path.glob("*.json"))
            if has_documents or (path / META_DIR).is_dir():
                tables.append(path.name)
        return tables

    def size(self) -> int:
        total_files = 0
        for table in self.list_tables():
            total_files += sum(1 for p in self._table_dir(table).glob("*.json") if p.stem.isdigit())
        return total_files

    def drop_table(self, table: str) -> int:
        removed = super().drop_table(table)
        table_dir = self._table_dir(table)
        if table_dir.is_dir():
            shutil.rmtree(table_dir)
        return removed

    def compact(self) -> None:
        logger.info("File-based storage doesn't require compaction")
