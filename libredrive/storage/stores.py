"""
Key-Value Persistence
=====================

The storage service persists shards and metadata through the
KeyValueStore protocol. Two implementations are provided:

- InMemoryStore: process-local dict, for tests and ephemeral use
- SqliteStore: one SQLite table per namespace

Values are opaque bytes; encoding belongs to the caller.
"""

from __future__ import annotations

import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Final, Iterator, Optional, Protocol

_TABLE_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class KeyValueStore(Protocol):
    """Minimal key-value persistence interface."""

    def get(self, key: str) -> Optional[bytes]:
        """Return the value for key, or None if absent."""
        ...

    def put(self, key: str, value: bytes) -> None:
        """Insert or replace the value for key."""
        ...

    def delete(self, key: str) -> bool:
        """Remove key. Returns False if it was absent."""
        ...

    def keys(self) -> list[str]:
        """Return all keys currently stored."""
        ...


class InMemoryStore:
    """Thread-safe in-memory KeyValueStore."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data


class SqliteStore:
    """
    KeyValueStore backed by a SQLite table.

    Several stores may share one database file, each with its own table.
    A new connection is opened per operation, so instances can be shared
    across threads.
    """

    def __init__(self, db_path: Path | str, table: str = "kv") -> None:
        if not _TABLE_NAME_RE.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._db_path = Path(db_path)
        self._table = table
        self.initialize_db()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)

    def get(self, key: str) -> Optional[bytes]:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT value FROM {self._table} WHERE key = ?", (key,)
            ).fetchone()
        return bytes(row[0]) if row else None

    def put(self, key: str, value: bytes) -> None:
        with self._get_connection() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {self._table} (key, value) VALUES (?, ?)",
                (key, sqlite3.Binary(value)),
            )

    def delete(self, key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def keys(self) -> list[str]:
        with self._get_connection() as conn:
            rows = conn.execute(f"SELECT key FROM {self._table} ORDER BY key").fetchall()
        return [row[0] for row in rows]
