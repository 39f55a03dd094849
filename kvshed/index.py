"""
Typed ordered index for kvshed.

An index is a named collection of entries sharing the prefix the registry
assigned to (name, "index"). Each entry is stored at

    prefix || key_codec.encode(key)

so iterating the store over the prefix yields the index in the byte order
of the encoded keys. Callers pick key codecs whose byte order matches the
order they want (e.g. big-endian integers, fixed-width hashes).

Invariants:
    - Entry keys of different indexes never interleave
    - Iteration order is ascending encoded-key order
    - *_in_batch methods perform no store I/O
    - An absent entry raises NotFoundError

How to change safely:
    - Changing a key codec changes the on-disk layout; declare a new index
      under a new name instead
"""

from __future__ import annotations

from typing import Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar

from .codec import Codec, decode_value, encode_value
from .errors import NotFoundError
from .schema import FieldKind, SchemaRegistry
from .store.base import Batch

K = TypeVar("K")
V = TypeVar("V")


class Index(Generic[K, V]):
    """Ordered multi-entry accessor with application-defined key encoding.

    Attributes:
        name: Index name as declared in the catalogue
        prefix: Storage prefix shared by every entry

    Example:
        >>> peers = Index(registry, "peers-by-addr", string_codec, json_codec())
        >>> peers.put("1.2.3.4", {"port": 1634})
        >>> list(peers.iterate())
        [('1.2.3.4', {'port': 1634})]
    """

    KIND = FieldKind.INDEX

    def __init__(
        self,
        registry: SchemaRegistry,
        name: str,
        key_codec: Codec[K],
        value_codec: Codec[V],
    ) -> None:
        """Declare the index in the registry and bind to its prefix.

        Raises:
            SchemaConflictError: If name is already declared with another kind
            RegistryClosedError: If the registry is not open
        """
        self.name = name
        self.prefix = registry.resolve(name, self.KIND)
        self._registry = registry
        self._store = registry.store
        self._key_codec = key_codec
        self._value_codec = value_codec

    def entry_key(self, key: K) -> bytes:
        """Full storage key of an entry.

        Raises:
            EncodeError: If the key cannot be encoded
        """
        return self.prefix + encode_value(self._key_codec, key, field_name=self.name)

    def get(self, key: K) -> V:
        """Read the value of one entry.

        Raises:
            NotFoundError: If the entry is absent
            DecodeError: If the stored value does not match the value codec
        """
        storage_key = self.entry_key(key)
        try:
            data = self._store.get(storage_key)
        except NotFoundError:
            raise NotFoundError(
                f"Index '{self.name}' has no entry for {key!r}", key=storage_key
            ) from None
        return decode_value(self._value_codec, data, field_name=self.name, key=storage_key)

    def has(self, key: K) -> bool:
        """Whether an entry exists for key."""
        return self._store.has(self.entry_key(key))

    def has_multi(self, keys: Iterable[K]) -> List[bool]:
        """Existence of each key, in input order."""
        return [self.has(key) for key in keys]

    def put(self, key: K, value: V) -> None:
        """Write one entry, replacing any prior value."""
        storage_key = self.entry_key(key)
        self._store.put(storage_key, self._encode(value))

    def put_in_batch(self, batch: Batch, key: K, value: V) -> None:
        """Stage writing one entry in batch."""
        storage_key = self.entry_key(key)
        batch.put(storage_key, self._encode(value))

    def delete(self, key: K) -> None:
        """Remove one entry. Removing an absent entry is not an error."""
        self._store.delete(self.entry_key(key))

    def delete_in_batch(self, batch: Batch, key: K) -> None:
        """Stage removal of one entry in batch."""
        batch.delete(self.entry_key(key))

    def iterate(
        self,
        start_from: Optional[K] = None,
        skip_start: bool = False,
        prefix: bytes = b"",
    ) -> Iterator[Tuple[K, V]]:
        """Iterate over entries in ascending encoded-key order.

        Args:
            start_from: Begin at the first entry whose key is >= this key
            skip_start: Skip the entry equal to start_from, if present
            prefix: Only entries whose encoded key starts with these bytes

        Yields:
            (key, value) tuples

        Raises:
            DecodeError: If a stored key or value cannot be decoded
        """
        start = self.entry_key(start_from) if start_from is not None else None
        for storage_key, data in self._store.iterate(self.prefix + prefix, start=start):
            if skip_start and storage_key == start:
                continue
            yield self._decode_entry(storage_key, data)

    def first(self, prefix: bytes = b"") -> Tuple[K, V]:
        """Entry with the smallest key.

        Raises:
            NotFoundError: If no entry matches
        """
        for storage_key, data in self._store.iterate(self.prefix + prefix):
            return self._decode_entry(storage_key, data)
        raise NotFoundError(f"Index '{self.name}' is empty", key=self.prefix + prefix)

    def last(self, prefix: bytes = b"") -> Tuple[K, V]:
        """Entry with the largest key.

        Raises:
            NotFoundError: If no entry matches
        """
        for storage_key, data in self._store.iterate(self.prefix + prefix, reverse=True):
            return self._decode_entry(storage_key, data)
        raise NotFoundError(f"Index '{self.name}' is empty", key=self.prefix + prefix)

    def count(self) -> int:
        """Number of entries."""
        return sum(1 for _ in self._store.iterate(self.prefix))

    def count_from(self, start_from: K) -> int:
        """Number of entries with key >= start_from."""
        start = self.entry_key(start_from)
        return sum(1 for _ in self._store.iterate(self.prefix, start=start))

    def _encode(self, value: V) -> bytes:
        return encode_value(self._value_codec, value, field_name=self.name)

    def _decode_entry(self, storage_key: bytes, data: bytes) -> Tuple[K, V]:
        key = decode_value(
            self._key_codec,
            storage_key[len(self.prefix):],
            field_name=self.name,
            key=storage_key,
        )
        value = decode_value(self._value_codec, data, field_name=self.name, key=storage_key)
        return key, value

    def __repr__(self) -> str:
        return f"Index(name={self.name!r}, prefix={self.prefix.hex()})"
