"""
Base protocol and types for the ordered key-value store capability.

This module defines the KeyValueStore protocol that all backends must
implement, along with the Batch type used for atomic grouped writes.

Invariants:
    - Keys and values are raw bytes
    - iterate() yields keys in ascending byte order (descending if reversed)
    - write_batch() makes every staged operation visible together or none
    - get() on an absent key raises NotFoundError, never returns None

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
    - Keep Batch free of I/O: staging must never touch the store
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import ShedSettings

logger = logging.getLogger(__name__)


class BatchOp(Enum):
    """Operation staged in a batch."""

    PUT = "put"
    DELETE = "delete"


@dataclass
class Batch:
    """A set of staged writes committed to the store as one atomic unit.

    Staging is pure bookkeeping: nothing reaches the store until the batch
    is passed to KeyValueStore.write_batch(). Operations are applied in the
    order they were staged, so a later put of the same key wins.

    Example:
        >>> batch = store.new_batch()
        >>> batch.put(b"a", b"1")
        >>> batch.delete(b"b")
        >>> store.write_batch(batch)
    """

    ops: List[Tuple[BatchOp, bytes, Optional[bytes]]] = field(default_factory=list)

    def put(self, key: bytes, value: bytes) -> None:
        """Stage a put of value at key."""
        self.ops.append((BatchOp.PUT, key, value))

    def delete(self, key: bytes) -> None:
        """Stage a delete of key."""
        self.ops.append((BatchOp.DELETE, key, None))

    def __len__(self) -> int:
        return len(self.ops)


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for ordered key-value store backends.

    Atomicity contract:
        - put/delete are atomic per key
        - write_batch applies all staged operations or none of them
        - compare_and_write_batch checks one key and applies the batch in a
          single atomic step, also against other handles on the same store

    Ordering contract:
        - iterate() returns keys sharing a prefix in ascending byte order

    Example:
        >>> store = InMemoryStore()
        >>> store.put(b"k", b"v")
        >>> store.get(b"k")
        b'v'
    """

    @abstractmethod
    def get(self, key: bytes) -> bytes:
        """Read the value stored at key.

        Raises:
            NotFoundError: If key is absent
            StoreError: If the store fails
        """
        ...

    @abstractmethod
    def has(self, key: bytes) -> bool:
        """Whether a value is stored at key."""
        ...

    @abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        """Store value at key, replacing any prior value."""
        ...

    @abstractmethod
    def delete(self, key: bytes) -> None:
        """Remove key. Deleting an absent key is not an error."""
        ...

    def new_batch(self) -> Batch:
        """Create an empty batch for this store."""
        return Batch()

    @abstractmethod
    def write_batch(self, batch: Batch) -> None:
        """Commit all staged operations atomically.

        Raises:
            StoreError: If the commit fails (nothing is applied)
        """
        ...

    @abstractmethod
    def compare_and_write_batch(
        self, batch: Batch, key: bytes, expected: Optional[bytes]
    ) -> bool:
        """Commit batch only if key currently holds expected.

        Args:
            batch: Operations to apply
            key: Key to compare
            expected: Required current value, or None if key must be absent

        Returns:
            True if the batch was committed, False if key held another value
            (nothing is applied)

        Raises:
            StoreError: If the commit fails (nothing is applied)
        """
        ...

    @abstractmethod
    def iterate(
        self,
        prefix: bytes = b"",
        start: Optional[bytes] = None,
        reverse: bool = False,
    ) -> Iterator[Tuple[bytes, bytes]]:
        """Iterate over (key, value) pairs whose key starts with prefix.

        Args:
            prefix: Only keys with this prefix are returned
            start: Ascending: begin at the first key >= start.
                Descending: begin at the last key <= start.
            reverse: Yield in descending key order

        Yields:
            (key, value) tuples in key order
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release resources. Further operations raise StoreClosedError."""
        ...

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether close() has been called."""
        ...


def prefix_upper_bound(prefix: bytes) -> Optional[bytes]:
    """Smallest key greater than every key starting with prefix.

    Returns None when no such bound exists (empty prefix or all 0xff).
    """
    stripped = prefix.rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


def create_store(settings: "ShedSettings") -> KeyValueStore:
    """Factory function to create a store from configuration.

    Args:
        settings: kvshed settings

    Returns:
        Appropriate KeyValueStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryStore
    from .sqlite import SqliteStore

    if settings.backend == StoreBackend.SQLITE:
        return SqliteStore(
            settings.db_path,
            wal_mode=settings.wal_mode,
            busy_timeout_ms=settings.busy_timeout_ms,
        )
    elif settings.backend == StoreBackend.MEMORY:
        return InMemoryStore()
    else:
        raise ValueError(f"Unsupported store backend: {settings.backend}")
