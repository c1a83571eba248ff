"""
Encoding layer - documents, index id-lists and metadata to bytes and back.

Every backend stores UTF-8 JSON. Decoding failures surface as CorruptRecord
so callers can skip the offending record instead of aborting a scan.
"""

import json
from typing import Any, Dict, List

from .errors import CorruptRecord


def encode_document(document: Dict[str, Any]) -> bytes:
    """Serialize a document mapping to bytes."""
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_document(data: bytes) -> Dict[str, Any]:
    """Deserialize a document; anything that is not a JSON object is corrupt."""
    try:
        if isinstance(data, (bytes, bytearray, memoryview)):
            data = bytes(data).decode("utf-8")
        document = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        raise CorruptRecord(f"Undecodable document: {e}") from e

    if not isinstance(document, dict):
        raise CorruptRecord(f"Document must be an object, got {type(document).__name__}")
    return document


def encode_ids(ids: List[int]) -> bytes:
    return json.dumps(list(ids), separators=(",", ":")).encode("utf-8")


def decode_ids(data: bytes) -> List[int]:
    """Deserialize an index id-list."""
    try:
        if isinstance(data, (bytes, bytearray, memoryview)):
            data = bytes(data).decode("utf-8")
        ids = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        raise CorruptRecord(f"Undecodable index entry: {e}") from e

    if not isinstance(ids, list):
        raise CorruptRecord("Index entry must be a list of ids")
    try:
        return [int(i) for i in ids]
    except (TypeError, ValueError) as e:
        raise CorruptRecord(f"Index entry holds a non-integer id: {e}") from e


def encode_value(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_value(data: bytes) -> Any:
    try:
        if isinstance(data, (bytes, bytearray, memoryview)):
            data = bytes(data).decode("utf-8")
        return json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        raise CorruptRecord(f"Undecodable metadata value: {e}") from e
