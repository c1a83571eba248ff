"""
Core data types - documents, index entries and naming rules.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

from .errors import InvalidName

# Bookkeeping fields written by the store
ID_FIELD = "id"
TABLE_FIELD = "_table"
VECTORS_FIELD = "_vectors"

INCLUDES_SUFFIX = "_includes"

_TABLE_NAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")


def validate_table_name(table: str) -> str:
    """Reject names that cannot be used as a key segment or directory name."""
    if not isinstance(table, str) or not _TABLE_NAME_RE.match(table):
        raise InvalidName(f"Invalid table name: {table!r}")
    return table


def is_scalar(value: Any) -> bool:
    return isinstance(value, (str, bool, int, float))


def index_token(value: Any) -> str:
    """Canonical string form of a scalar value as used in index keys."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


@dataclass(frozen=True)
class IndexEntry:
    """A derived fact: documents whose `field` has value `token`."""

    field: str
    """Indexed field name (array fields carry the _includes suffix)"""

    token: str
    """Canonical value token, see index_token()"""

    @property
    def is_membership(self) -> bool:
        return self.field.endswith(INCLUDES_SUFFIX)


class Document(Mapping):
    """
    Typed wrapper around a stored document.

    Fields are read with get()/[] and written with set(); the wrapper is a
    read-only Mapping so it can be passed anywhere a dict view is expected.
    Query results carry their cosine similarity in `similarity`.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, similarity: Optional[float] = None):
        self._data: Dict[str, Any] = dict(data or {})
        self.similarity = similarity

    @property
    def id(self) -> Optional[int]:
        return self._data.get(ID_FIELD)

    @property
    def table(self) -> Optional[str]:
        return self._data.get(TABLE_FIELD)

    @property
    def vectors(self) -> Dict[str, Any]:
        return dict(self._data.get(VECTORS_FIELD) or {})

    def set(self, name: str, value: Any) -> None:
        if name == ID_FIELD and self._data.get(ID_FIELD) is not None and value != self._data[ID_FIELD]:
            raise ValueError("Document id is immutable once assigned")
        self._data[name] = value

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        if self.similarity is not None:
            return f"Document({self._data!r}, similarity={self.similarity:.4f})"
        return f"Document({self._data!r})"
