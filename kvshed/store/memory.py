"""
In-memory key-value store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost when the object is discarded
    - Provides the same ordering and batch guarantees as SqliteStore
    - Thread-safe for concurrent access

How to change safely:
    - Keep interface compatible with KeyValueStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import bisect
import threading
from typing import Dict, Iterator, List, Optional, Tuple
import logging

from ..errors import NotFoundError, StoreClosedError, StoreError
from .base import Batch, BatchOp, prefix_upper_bound

logger = logging.getLogger(__name__)


class InMemoryStore:
    """In-memory implementation of KeyValueStore for testing.

    Keys are kept in a sorted list next to a dict of values so prefix
    iteration is a bisect plus a slice.

    Thread safety:
        Uses a threading lock around every read and write. Iteration works
        on a snapshot taken under the lock, so callers may write while
        iterating.

    Example:
        >>> store = InMemoryStore()
        >>> store.put(b"a", b"1")
        >>> list(store.iterate(b""))
        [(b'a', b'1')]
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._data: Dict[bytes, bytes] = {}
        self._keys: List[bytes] = []
        self._lock = threading.Lock()
        self._closed = False
        self._pending_failure: Optional[Exception] = None
        self._fail_after: int = 0

    @property
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed

    def close(self) -> None:
        """Close the store and drop all data."""
        with self._lock:
            self._closed = True
            self._data.clear()
            self._keys.clear()
        logger.debug("InMemoryStore closed")

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError()

    def get(self, key: bytes) -> bytes:
        """Read the value at key."""
        with self._lock:
            self._check_open()
            try:
                return self._data[key]
            except KeyError:
                raise NotFoundError(f"Key not found: {key.hex()}", key=key) from None

    def has(self, key: bytes) -> bool:
        """Whether key is present."""
        with self._lock:
            self._check_open()
            return key in self._data

    def put(self, key: bytes, value: bytes) -> None:
        """Store value at key."""
        with self._lock:
            self._check_open()
            self._put_locked(key, value)

    def delete(self, key: bytes) -> None:
        """Remove key if present."""
        with self._lock:
            self._check_open()
            self._delete_locked(key)

    def new_batch(self) -> Batch:
        """Create an empty batch."""
        return Batch()

    def write_batch(self, batch: Batch) -> None:
        """Apply all staged operations atomically.

        Every operation is validated before the first one is applied, so
        a failing batch leaves the store untouched.
        """
        with self._lock:
            self._check_open()
            self._apply_locked(batch)

        logger.debug("Batch written to in-memory store", extra={"ops": len(batch)})

    def compare_and_write_batch(
        self, batch: Batch, key: bytes, expected: Optional[bytes]
    ) -> bool:
        """Apply batch only if key currently holds expected (None = absent)."""
        with self._lock:
            self._check_open()
            if self._data.get(key) != expected:
                return False
            self._apply_locked(batch)

        logger.debug("Guarded batch written to in-memory store", extra={"ops": len(batch)})
        return True

    def _apply_locked(self, batch: Batch) -> None:
        # An injected failure targets exactly one batch, whether or not it fires.
        failure, self._pending_failure = self._pending_failure, None

        for position, (op, key, value) in enumerate(batch.ops):
            if failure is not None and position >= self._fail_after:
                raise failure
            if not isinstance(key, bytes):
                raise StoreError(f"Batch key must be bytes, got {type(key).__name__}")
            if op is BatchOp.PUT and not isinstance(value, bytes):
                raise StoreError(
                    f"Batch value must be bytes, got {type(value).__name__}"
                )

        for op, key, value in batch.ops:
            if op is BatchOp.PUT:
                self._put_locked(key, value)
            else:
                self._delete_locked(key)

    def iterate(
        self,
        prefix: bytes = b"",
        start: Optional[bytes] = None,
        reverse: bool = False,
    ) -> Iterator[Tuple[bytes, bytes]]:
        """Iterate over keys with prefix in key order."""
        with self._lock:
            self._check_open()
            lo = bisect.bisect_left(self._keys, prefix)
            upper = prefix_upper_bound(prefix)
            hi = len(self._keys) if upper is None else bisect.bisect_left(self._keys, upper)

            if start is not None:
                if reverse:
                    hi = min(hi, bisect.bisect_right(self._keys, start))
                else:
                    lo = max(lo, bisect.bisect_left(self._keys, start))

            keys = self._keys[lo:hi]
            if reverse:
                keys.reverse()
            items = [(k, self._data[k]) for k in keys]

        yield from items

    def _put_locked(self, key: bytes, value: bytes) -> None:
        if key not in self._data:
            bisect.insort(self._keys, key)
        self._data[key] = value

    def _delete_locked(self, key: bytes) -> None:
        if key in self._data:
            del self._data[key]
            idx = bisect.bisect_left(self._keys, key)
            del self._keys[idx]

    # Testing helpers

    def inject_failure(self, exception: Exception, after_ops: int = 0) -> None:
        """Make the next batch write raise partway through.

        The exception is raised once `after_ops` operations of the batch
        have been validated, simulating a crash during commit. The failure
        is disarmed after that batch even if it has fewer operations.
        """
        with self._lock:
            self._pending_failure = exception
            self._fail_after = after_ops

    def key_count(self) -> int:
        """Number of stored keys (testing helper)."""
        with self._lock:
            return len(self._keys)

    def dump(self) -> Dict[bytes, bytes]:
        """Copy of all stored data (testing helper)."""
        with self._lock:
            return dict(self._data)
