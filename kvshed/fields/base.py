"""
Base accessor for single-value fields.

A field is a lightweight handle: it holds its registry, its name and the
key the registry assigned to (name, kind). All state lives in the store, so
any number of handles for the same field observe the same value.

Invariants:
    - The key is resolved once, at construction
    - put() is a full overwrite, never a merge
    - put_in_batch() and delete_in_batch() perform no store I/O
    - get() on an absent key raises NotFoundError
    - Failures are raised to the caller, never logged here

How to change safely:
    - New variants subclass Field and set KIND
    - Never change the KIND of an existing variant; stored data depends on it
"""

from __future__ import annotations

from typing import ClassVar, Generic, TypeVar

from ..codec import Codec, decode_value, encode_value
from ..errors import NotFoundError
from ..schema import FieldKind, SchemaRegistry
from ..store.base import Batch

T = TypeVar("T")


class Field(Generic[T]):
    """A named, typed value stored at one deterministic key.

    Attributes:
        name: Field name as declared in the catalogue
        key: Storage key assigned by the registry

    Example:
        >>> field = StructField(registry, "peer-metadata", json_codec())
        >>> field.put({"addr": "1.2.3.4"})
        >>> field.get()
        {'addr': '1.2.3.4'}
    """

    KIND: ClassVar[FieldKind]

    def __init__(self, registry: SchemaRegistry, name: str, codec: Codec[T]) -> None:
        """Declare the field in the registry and bind to its key.

        Raises:
            SchemaConflictError: If name is already declared with another kind
            RegistryClosedError: If the registry is not open
        """
        self.name = name
        self.key = registry.resolve(name, self.KIND)
        self._registry = registry
        self._store = registry.store
        self._codec = codec

    def get(self) -> T:
        """Read and decode the stored value.

        Raises:
            NotFoundError: If the field has no value
            DecodeError: If the stored bytes do not match the codec
        """
        try:
            data = self._store.get(self.key)
        except NotFoundError:
            raise NotFoundError(f"Field '{self.name}' has no value", key=self.key) from None
        return decode_value(self._codec, data, field_name=self.name, key=self.key)

    def has(self) -> bool:
        """Whether the field has a stored value."""
        return self._store.has(self.key)

    def put(self, value: T) -> None:
        """Encode value and write it, replacing any prior value.

        Raises:
            EncodeError: If value cannot be encoded (nothing is written)
        """
        self._store.put(self.key, self._encode(value))

    def put_in_batch(self, batch: Batch, value: T) -> None:
        """Encode value and stage the write in batch.

        Raises:
            EncodeError: If value cannot be encoded (nothing is staged)
        """
        batch.put(self.key, self._encode(value))

    def delete(self) -> None:
        """Remove the stored value."""
        self._store.delete(self.key)

    def delete_in_batch(self, batch: Batch) -> None:
        """Stage removal of the stored value in batch."""
        batch.delete(self.key)

    def _encode(self, value: T) -> bytes:
        return encode_value(self._codec, value, field_name=self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, key={self.key.hex()})"
