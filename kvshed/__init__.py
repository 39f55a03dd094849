"""
kvshed - a schema layer over an ordered key-value store.

This package gives subsystems typed, named fields and indexes instead of
raw byte keys:
- SchemaRegistry assigns every (name, kind) a unique, persisted prefix
- Fields store one value at their prefix
- Indexes store many entries under their prefix, iterable in key order

Keyspace:
    0x00 ...                  schema catalogue (reserved)
    0x01 | uint32(id)         field value
    0x01 | uint32(id) | key   index or vector entry

Invariants:
    - Distinct (name, kind) pairs never share a prefix
    - A (name, kind) keeps its prefix for the life of the store
    - A batch built from several fields and indexes commits atomically

How to change safely:
    - Declare new data under new names; never reuse a name with a new kind
    - Keep codecs of existing fields backward compatible
"""

from ._version import __version__
from .codec import Codec, bytes_codec, json_codec, model_codec, string_codec, uint64_codec
from .db import ShedDB
from .errors import (
    DecodeError,
    EncodeError,
    NotFoundError,
    RegistryClosedError,
    SchemaConflictError,
    SchemaCorruptionError,
    SchemaExhaustedError,
    ShedError,
    StoreClosedError,
    StoreError,
)
from .fields import BytesField, StringField, StructField, Uint64Field, Uint64Vector
from .index import Index
from .schema import FieldKind, SchemaEntry, SchemaRegistry
from .store import Batch, InMemoryStore, KeyValueStore, SqliteStore

__all__ = [
    "__version__",
    # Schema
    "SchemaRegistry",
    "SchemaEntry",
    "FieldKind",
    # Accessors
    "BytesField",
    "StringField",
    "Uint64Field",
    "StructField",
    "Uint64Vector",
    "Index",
    # Codecs
    "Codec",
    "bytes_codec",
    "string_codec",
    "uint64_codec",
    "json_codec",
    "model_codec",
    # Stores
    "KeyValueStore",
    "Batch",
    "InMemoryStore",
    "SqliteStore",
    "ShedDB",
    # Errors
    "ShedError",
    "NotFoundError",
    "SchemaConflictError",
    "SchemaCorruptionError",
    "SchemaExhaustedError",
    "RegistryClosedError",
    "EncodeError",
    "DecodeError",
    "StoreError",
    "StoreClosedError",
]
