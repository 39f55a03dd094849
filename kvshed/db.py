"""
ShedDB - a store and its schema registry opened together.

This module ties the lifecycle of the two pieces the accessors need:
- The key-value store (opened from settings)
- The SchemaRegistry bound to that store

Accessors still receive the registry explicitly; the factory methods here
are shorthands that pass self.registry along.

Invariants:
    - The registry is opened right after the store and closed right before it
    - All accessors created from one ShedDB share its store

How to change safely:
    - Keep factory methods thin; behaviour belongs in the accessor classes
"""

from __future__ import annotations

import logging
from typing import Optional, TypeVar

from .codec import Codec
from .config import ShedSettings
from .fields import BytesField, StringField, StructField, Uint64Field, Uint64Vector
from .index import Index
from .schema import SchemaRegistry
from .store import Batch, KeyValueStore, create_store

logger = logging.getLogger(__name__)

T = TypeVar("T")
K = TypeVar("K")
V = TypeVar("V")


class ShedDB:
    """A key-value store plus its schema registry.

    Attributes:
        store: Underlying key-value store
        registry: Schema registry for the store

    Example:
        >>> with ShedDB.open(ShedSettings(backend="memory")) as db:
        ...     counter = db.uint64_field("counter")
        ...     counter.inc()
        1
    """

    def __init__(self, store: KeyValueStore) -> None:
        """Bind to an already opened store and load its catalogue.

        Raises:
            SchemaCorruptionError: If the catalogue cannot be decoded
        """
        self.store = store
        self.registry = SchemaRegistry(store).open()

    @classmethod
    def open(cls, settings: Optional[ShedSettings] = None) -> ShedDB:
        """Open the store described by settings (loaded from env if omitted)."""
        settings = settings or ShedSettings()
        store = create_store(settings)
        try:
            db = cls(store)
        except BaseException:
            store.close()
            raise
        logger.info(
            f"Opened {settings.backend.value} store with {len(db.registry)} schema entries"
        )
        return db

    def close(self) -> None:
        """Close the registry, then the store."""
        self.registry.close()
        self.store.close()

    def __enter__(self) -> ShedDB:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def new_batch(self) -> Batch:
        """Create an empty batch for this store."""
        return self.store.new_batch()

    def write_batch(self, batch: Batch) -> None:
        """Commit a batch atomically."""
        self.store.write_batch(batch)

    def bytes_field(self, name: str) -> BytesField:
        return BytesField(self.registry, name)

    def string_field(self, name: str) -> StringField:
        return StringField(self.registry, name)

    def uint64_field(self, name: str) -> Uint64Field:
        return Uint64Field(self.registry, name)

    def struct_field(self, name: str, codec: Codec[T]) -> StructField[T]:
        return StructField(self.registry, name, codec)

    def uint64_vector(self, name: str) -> Uint64Vector:
        return Uint64Vector(self.registry, name)

    def index(self, name: str, key_codec: Codec[K], value_codec: Codec[V]) -> Index[K, V]:
        return Index(self.registry, name, key_codec, value_codec)
