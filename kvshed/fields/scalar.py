"""
Scalar field variants: raw bytes, strings and uint64 counters.
"""

from __future__ import annotations

from ..codec import bytes_codec, string_codec, uint64_codec
from ..errors import NotFoundError
from ..schema import FieldKind, SchemaRegistry
from ..store.base import Batch
from .base import Field


class BytesField(Field[bytes]):
    """Opaque bytes stored as-is."""

    KIND = FieldKind.RAW

    def __init__(self, registry: SchemaRegistry, name: str) -> None:
        super().__init__(registry, name, bytes_codec)


class StringField(Field[str]):
    """UTF-8 text."""

    KIND = FieldKind.STRING

    def __init__(self, registry: SchemaRegistry, name: str) -> None:
        super().__init__(registry, name, string_codec)


class Uint64Field(Field[int]):
    """Unsigned 64-bit integer with increment and decrement helpers.

    inc/dec are read-modify-write without any locking: two concurrent
    callers may lose an update. An absent value counts as zero, and dec
    never goes below zero.

    Example:
        >>> counter = Uint64Field(registry, "gc-size")
        >>> counter.inc()
        1
        >>> counter.dec(5)
        0
    """

    KIND = FieldKind.UINT64

    def __init__(self, registry: SchemaRegistry, name: str) -> None:
        super().__init__(registry, name, uint64_codec)

    def _current(self) -> int:
        try:
            return self.get()
        except NotFoundError:
            return 0

    def inc(self, delta: int = 1) -> int:
        """Add delta to the stored value and return the new value."""
        value = self._current() + delta
        self.put(value)
        return value

    def inc_in_batch(self, batch: Batch, delta: int = 1) -> int:
        """Stage the incremented value in batch and return it.

        The current value is read from the store, not from earlier
        operations staged in the same batch.
        """
        value = self._current() + delta
        self.put_in_batch(batch, value)
        return value

    def dec(self, delta: int = 1) -> int:
        """Subtract delta, saturating at zero, and return the new value."""
        value = max(self._current() - delta, 0)
        self.put(value)
        return value

    def dec_in_batch(self, batch: Batch, delta: int = 1) -> int:
        """Stage the decremented value in batch and return it."""
        value = max(self._current() - delta, 0)
        self.put_in_batch(batch, value)
        return value
