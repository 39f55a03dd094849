"""
Sparse vector of uint64 counters.

Element i of a vector is stored at prefix || uint64_be(i), so all elements
of one vector share the prefix the registry assigned to (name,
"vector-uint64"). Unset elements read as zero.
"""

from __future__ import annotations

from typing import Iterator, Tuple

from ..codec import decode_value, encode_value, uint64_codec
from ..errors import NotFoundError
from ..schema import FieldKind, SchemaRegistry
from ..schema.keys import decode_uint64, encode_uint64
from ..store.base import Batch


class Uint64Vector:
    """Named vector of uint64 values addressed by integer position.

    Example:
        >>> bins = Uint64Vector(registry, "bin-ids")
        >>> bins.inc(3)
        1
        >>> bins.get(3), bins.get(4)
        (1, 0)
    """

    KIND = FieldKind.VECTOR_UINT64

    def __init__(self, registry: SchemaRegistry, name: str) -> None:
        """Declare the vector in the registry and bind to its prefix."""
        self.name = name
        self.prefix = registry.resolve(name, self.KIND)
        self._registry = registry
        self._store = registry.store

    def _key(self, position: int) -> bytes:
        if position < 0:
            raise ValueError(f"Vector position must be non-negative, got {position}")
        return self.prefix + encode_uint64(position)

    def get(self, position: int) -> int:
        """Value at position; zero when never set.

        Raises:
            DecodeError: If the stored bytes are not a uint64
        """
        key = self._key(position)
        try:
            data = self._store.get(key)
        except NotFoundError:
            return 0
        return decode_value(uint64_codec, data, field_name=self.name, key=key)

    def put(self, position: int, value: int) -> None:
        """Set the value at position."""
        self._store.put(self._key(position), self._encode(value))

    def put_in_batch(self, batch: Batch, position: int, value: int) -> None:
        """Stage setting the value at position in batch."""
        batch.put(self._key(position), self._encode(value))

    def inc(self, position: int, delta: int = 1) -> int:
        """Add delta at position and return the new value."""
        value = self.get(position) + delta
        self.put(position, value)
        return value

    def inc_in_batch(self, batch: Batch, position: int, delta: int = 1) -> int:
        """Stage the incremented value at position and return it."""
        value = self.get(position) + delta
        self.put_in_batch(batch, position, value)
        return value

    def dec(self, position: int, delta: int = 1) -> int:
        """Subtract delta at position, saturating at zero."""
        value = max(self.get(position) - delta, 0)
        self.put(position, value)
        return value

    def dec_in_batch(self, batch: Batch, position: int, delta: int = 1) -> int:
        """Stage the decremented value at position and return it."""
        value = max(self.get(position) - delta, 0)
        self.put_in_batch(batch, position, value)
        return value

    def items(self) -> Iterator[Tuple[int, int]]:
        """Iterate over (position, value) for every set element, in order."""
        for key, data in self._store.iterate(self.prefix):
            position = decode_uint64(key[len(self.prefix):])
            yield position, decode_value(uint64_codec, data, field_name=self.name, key=key)

    def _encode(self, value: int) -> bytes:
        return encode_value(uint64_codec, value, field_name=self.name)

    def __repr__(self) -> str:
        return f"Uint64Vector(name={self.name!r}, prefix={self.prefix.hex()})"
