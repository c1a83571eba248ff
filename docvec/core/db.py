"""
SQLite foundation for the key-value backend.

A single `kv` table is used as an ordered key-value map: documents, index
entries and metadata live side by side under disjoint key prefixes.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Union

from .config import ensure_db_directory


def connect(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Open a connection and make sure the kv table exists."""
    ensure_db_directory(db_path)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    init_db(conn)
    return conn


@contextmanager
def get_db(db_path: Union[str, Path]) -> Generator[sqlite3.Connection, None, None]:
    """Get a short-lived SQLite database connection."""
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


def init_db(conn: sqlite3.Connection) -> None:
    """Initialize the database with the kv table."""
    cursor = conn.cursor()
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value BLOB NOT NULL
        ) WITHOUT ROWID
    ''')
    conn.commit()


def prefix_bounds(prefix: str):
    """Half-open key range [prefix, upper) covering every key with the prefix."""
    upper = prefix[:-1] + chr(ord(prefix[-1]) + 1)
    return prefix, upper


def health_check(db_path: Union[str, Path]) -> bool:
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]
            return "kv" in table_names
    except sqlite3.Error:
        return False
