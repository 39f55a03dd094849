"""
Typed field accessors for kvshed.

Every accessor resolves its key through an explicitly passed
SchemaRegistry and then reads and writes through the registry's store:
- BytesField ("raw"), StringField ("string"), Uint64Field ("uint64")
- StructField ("struct-json") with a caller-supplied codec
- Uint64Vector ("vector-uint64")

Invariants:
    - put() writes immediately, put_in_batch() only stages
    - Batches from several fields and indexes can be committed together
"""

from .base import Field
from .scalar import BytesField, StringField, Uint64Field
from .struct import StructField
from .vector import Uint64Vector

__all__ = [
    "Field",
    "BytesField",
    "StringField",
    "Uint64Field",
    "StructField",
    "Uint64Vector",
]
