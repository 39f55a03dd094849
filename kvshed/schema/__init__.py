"""
Schema module for kvshed.

This module provides the key-namespace management, including:
- Kinds and catalogue entries (FieldKind, SchemaEntry)
- Key derivation from assigned ids
- The persistent SchemaRegistry

Invariants:
    - Ids are immutable once assigned
    - Ids are never reused
    - A name never changes kind
    - Distinct entries never share a storage prefix

How to change safely:
    - Declare new fields with new names
    - Abandon (never delete or rename) fields that are no longer used
"""

from .keys import (
    CATALOGUE_REGION,
    DATA_REGION,
    PREFIX_LENGTH,
    decode_prefix,
    encode_prefix,
)
from .registry import SchemaRegistry
from .types import FieldKind, SchemaEntry

__all__ = [
    # Types
    "FieldKind",
    "SchemaEntry",
    # Keys
    "CATALOGUE_REGION",
    "DATA_REGION",
    "PREFIX_LENGTH",
    "encode_prefix",
    "decode_prefix",
    # Registry
    "SchemaRegistry",
]
