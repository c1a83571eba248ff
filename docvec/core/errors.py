"""
Error taxonomy for the document store.

Absent records are reported as None by the storage layer; the exceptions
below cover the cases the caller is expected to handle explicitly.
"""


class DocvecError(Exception):
    """Base class for all docvec errors."""
    pass


class RecordNotFound(DocvecError):
    """Raised by lookups that must produce a record (find_by_id, save of an unknown id)."""

    def __init__(self, table: str, doc_id):
        self.table = table
        self.doc_id = doc_id
        super().__init__(f"Record not found in '{table}' with id={doc_id}")


class ConfigurationError(DocvecError):
    """Unknown backend or vector engine, or invalid settings."""
    pass


class DimensionMismatch(DocvecError, ValueError):
    """Vector length differs from the collection's established dimensionality."""

    def __init__(self, collection: str, expected: int, actual: int):
        self.collection = collection
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension {actual} does not match dimension {expected} of collection '{collection}'"
        )


class CorruptRecord(DocvecError):
    """A stored document, index entry or metadata value failed to decode."""
    pass


class ConcurrencyHazard(DocvecError):
    """A concurrent writer raced this one (id collision). Safe to retry."""
    pass


class InvalidQuery(DocvecError, ValueError):
    """Malformed conditions, options or pagination values."""
    pass


class InvalidName(DocvecError, ValueError):
    """Table name that cannot be used as a storage key or directory."""
    pass


class MaintenanceError(DocvecError):
    """Custom exception for maintenance operations."""
    pass
