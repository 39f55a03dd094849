"""
SQLite-backed ordered key-value store for kvshed.

This module keeps the whole keyspace in a single SQLite table. SQLite
compares BLOB keys with memcmp, which gives the ascending byte order the
schema layer relies on for prefix iteration.

Invariants:
    - One SQLite file per store
    - Every batch is applied inside one transaction
    - A guarded batch reads its guard key in the same transaction it writes
    - A failed batch is rolled back completely
    - sqlite3 errors surface as StoreError, never as raw sqlite3 exceptions

How to change safely:
    - The kv table layout is the on-disk format; never change it in place
    - Test with large key counts before production
    - Keep all multi-statement writes inside explicit transactions

Table schema:
    kv:
        - key BLOB NOT NULL PRIMARY KEY
        - value BLOB NOT NULL
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from ..errors import NotFoundError, StoreClosedError, StoreError
from .base import Batch, BatchOp, prefix_upper_bound

logger = logging.getLogger(__name__)


class SqliteStore:
    """Ordered key-value store on top of a single SQLite file.

    Thread safety:
        One connection is shared by all callers and guarded by a lock.
        SQLite WAL mode lets other processes read while a batch commits.

    Example:
        >>> store = SqliteStore("/var/lib/kvshed/shed.db")
        >>> store.put(b"k", b"v")
        >>> store.get(b"k")
        b'v'
        >>> store.close()
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Open (creating if needed) the store file.

        Args:
            path: SQLite database file path
            wal_mode: Enable SQLite WAL journal mode
            busy_timeout_ms: SQLite busy timeout

        Raises:
            StoreError: If the database cannot be opened
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = threading.Lock()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn: Optional[sqlite3.Connection] = sqlite3.connect(
                str(self.path),
                timeout=busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
                check_same_thread=False,
            )
            self._conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
            if wal_mode:
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
            self._create_schema(self._conn)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open store: {e}", path=str(self.path)) from e

        logger.debug("SqliteStore opened", extra={"path": str(self.path)})

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create the kv table."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                key BLOB NOT NULL PRIMARY KEY,
                value BLOB NOT NULL
            ) WITHOUT ROWID;
        """)
        conn.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")

    @property
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        return self._conn is None

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
        logger.debug("SqliteStore closed", extra={"path": str(self.path)})

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and yield the open connection.

        Raises:
            StoreClosedError: If the store is closed
            StoreError: If SQLite fails inside the block
        """
        with self._lock:
            if self._conn is None:
                raise StoreClosedError(path=str(self.path))
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StoreError(f"SQLite error: {e}", path=str(self.path)) from e

    def get(self, key: bytes) -> bytes:
        """Read the value at key."""
        with self._connection() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            raise NotFoundError(f"Key not found: {key.hex()}", key=key)
        return bytes(row[0])

    def has(self, key: bytes) -> bool:
        """Whether key is present."""
        with self._connection() as conn:
            row = conn.execute("SELECT 1 FROM kv WHERE key = ?", (key,)).fetchone()
        return row is not None

    def put(self, key: bytes, value: bytes) -> None:
        """Store value at key."""
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, value),
            )

    def delete(self, key: bytes) -> None:
        """Remove key if present."""
        with self._connection() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def new_batch(self) -> Batch:
        """Create an empty batch."""
        return Batch()

    def write_batch(self, batch: Batch) -> None:
        """Apply all staged operations in one transaction.

        Raises:
            StoreError: If any operation fails; the transaction is rolled back
        """
        self._write(batch)
        logger.debug("Batch written to SQLite store", extra={"ops": len(batch)})

    def compare_and_write_batch(
        self, batch: Batch, key: bytes, expected: Optional[bytes]
    ) -> bool:
        """Apply batch only if key currently holds expected (None = absent).

        The read and the writes share one BEGIN IMMEDIATE transaction, which
        holds the database write lock, so other connections to the same file
        (including other processes) cannot commit in between.
        """
        written = self._write(batch, guard=(key, expected))
        if written:
            logger.debug("Guarded batch written to SQLite store", extra={"ops": len(batch)})
        return written

    def _write(
        self,
        batch: Batch,
        guard: Optional[tuple[bytes, Optional[bytes]]] = None,
    ) -> bool:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                if guard is not None:
                    guard_key, expected = guard
                    row = conn.execute(
                        "SELECT value FROM kv WHERE key = ?", (guard_key,)
                    ).fetchone()
                    current = bytes(row[0]) if row is not None else None
                    if current != expected:
                        conn.execute("ROLLBACK")
                        return False

                for op, key, value in batch.ops:
                    if not isinstance(key, bytes):
                        raise StoreError(
                            f"Batch key must be bytes, got {type(key).__name__}",
                            path=str(self.path),
                        )
                    if op is BatchOp.PUT:
                        if not isinstance(value, bytes):
                            raise StoreError(
                                f"Batch value must be bytes, got {type(value).__name__}",
                                path=str(self.path),
                            )
                        conn.execute(
                            "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                            (key, value),
                        )
                    else:
                        conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        return True

    def iterate(
        self,
        prefix: bytes = b"",
        start: Optional[bytes] = None,
        reverse: bool = False,
    ) -> Iterator[tuple[bytes, bytes]]:
        """Iterate over keys with prefix in key order.

        Rows are fetched under the lock before yielding, so writes made by
        the caller during iteration do not affect the sequence.
        """
        clauses = ["key >= ?"]
        params: list[bytes] = [prefix]

        upper = prefix_upper_bound(prefix)
        if upper is not None:
            clauses.append("key < ?")
            params.append(upper)

        if start is not None:
            clauses.append("key <= ?" if reverse else "key >= ?")
            params.append(start)

        order = "DESC" if reverse else "ASC"
        sql = f"SELECT key, value FROM kv WHERE {' AND '.join(clauses)} ORDER BY key {order}"

        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        for key, value in rows:
            yield bytes(key), bytes(value)
