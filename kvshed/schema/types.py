"""
Core type definitions for the kvshed schema catalogue.

This module defines:
- FieldKind: storage shape of a declared field or index
- SchemaEntry: one persisted (name, kind) -> id mapping

Invariants:
    - id is a positive integer, assigned once and never reused
    - A name is bound to exactly one kind
    - Kind values are part of the on-disk catalogue; never rename them

How to change safely:
    - Add new kinds at the end with new string values
    - Never change the value of an existing kind
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class FieldKind(Enum):
    """Storage shapes a schema entry can declare."""

    RAW = "raw"  # Opaque bytes
    STRING = "string"  # UTF-8 text
    UINT64 = "uint64"  # 8-byte big-endian unsigned integer
    STRUCT_JSON = "struct-json"  # Structured value, JSON encoded
    INDEX = "index"  # Ordered multi-entry collection
    VECTOR_UINT64 = "vector-uint64"  # Sparse vector of uint64 counters

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Args:
            value: String name of the field kind

        Returns:
            Corresponding FieldKind enum value

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Unknown field kind '{value}'. Valid kinds: {valid}")

    @classmethod
    def coerce(cls, value: Union[str, FieldKind]) -> FieldKind:
        """Accept either a FieldKind or its string value."""
        if isinstance(value, cls):
            return value
        return cls.from_str(value)


@dataclass(frozen=True)
class SchemaEntry:
    """A persisted catalogue entry.

    Attributes:
        name: Name chosen by the declaring subsystem
        kind: Storage shape
        id: Assigned id; the storage prefix is derived from it
    """

    name: str
    kind: FieldKind
    id: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {"name": self.name, "kind": self.kind.value, "id": self.id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaEntry:
        """Create from dictionary representation.

        Raises:
            KeyError: If a member is missing
            TypeError: If id is not an integer (bool and float included)
            ValueError: If kind is unknown
        """
        schema_id = data["id"]
        if type(schema_id) is not int:
            raise TypeError(f"Schema id must be an integer, got {schema_id!r}")
        return cls(
            name=data["name"],
            kind=FieldKind.from_str(data["kind"]),
            id=schema_id,
        )
