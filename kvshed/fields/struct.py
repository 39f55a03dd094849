"""
Structured value field.

StructField stores one structured value under a "struct-json" catalogue
entry. The caller supplies the codec, typically json_codec() for plain
documents or model_codec(Model) for a pydantic model, so the target shape
of get() is fixed when the field is declared.

Invariants:
    - Encoding is deterministic for a fixed input
    - get() returns a value observably equal to the last put()
    - A stored document that no longer fits the model raises DecodeError
"""

from __future__ import annotations

from typing import TypeVar

from ..codec import Codec
from ..schema import FieldKind, SchemaRegistry
from .base import Field

T = TypeVar("T")


class StructField(Field[T]):
    """A structured value serialized with an explicit codec.

    Example:
        >>> meta = StructField(registry, "peer-metadata", model_codec(PeerMetadata))
        >>> meta.put(PeerMetadata(addr="1.2.3.4"))
        >>> meta.get().addr
        '1.2.3.4'
    """

    KIND = FieldKind.STRUCT_JSON

    def __init__(self, registry: SchemaRegistry, name: str, codec: Codec[T]) -> None:
        super().__init__(registry, name, codec)
