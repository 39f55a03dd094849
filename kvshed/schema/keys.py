"""
Key derivation for kvshed.

The flat keyspace is split into two regions by the first byte:

    0x00  catalogue   reserved for the schema registry
    0x01  data        field, index and vector keys derived from ids

A data prefix is the region byte followed by the id as a fixed-width
big-endian uint32. Fixed width means no prefix is a prefix of another,
so iterating one index never yields keys of a neighbouring id.

Invariants:
    - encode_prefix is a pure function of the id
    - Distinct ids give distinct prefixes of identical length
    - Catalogue keys never start with DATA_REGION
"""

from __future__ import annotations

import struct

CATALOGUE_REGION = b"\x00"
DATA_REGION = b"\x01"

CATALOGUE_VERSION_KEY = CATALOGUE_REGION + b"v"
CATALOGUE_COUNTER_KEY = CATALOGUE_REGION + b"n"
CATALOGUE_ENTRY_PREFIX = CATALOGUE_REGION + b"f"

ID_WIDTH = 4
MAX_ID = 2 ** (8 * ID_WIDTH) - 1
PREFIX_LENGTH = len(DATA_REGION) + ID_WIDTH

_UINT32 = struct.Struct(">I")
_UINT64 = struct.Struct(">Q")


def encode_prefix(schema_id: int) -> bytes:
    """Derive the storage prefix for an assigned id.

    Raises:
        ValueError: If the id is outside 1..MAX_ID
    """
    if not 1 <= schema_id <= MAX_ID:
        raise ValueError(f"Schema id {schema_id} out of range 1..{MAX_ID}")
    return DATA_REGION + _UINT32.pack(schema_id)


def decode_prefix(prefix: bytes) -> int:
    """Recover the id from a storage prefix (or a key starting with one)."""
    if len(prefix) < PREFIX_LENGTH or prefix[:1] != DATA_REGION:
        raise ValueError(f"Not a data key: {prefix.hex()}")
    return _UINT32.unpack(prefix[1:PREFIX_LENGTH])[0]


def entry_key(name: str) -> bytes:
    """Catalogue key under which the entry for name is stored."""
    return CATALOGUE_ENTRY_PREFIX + name.encode("utf-8")


def encode_uint64(value: int) -> bytes:
    """Fixed-width big-endian encoding; preserves numeric order."""
    return _UINT64.pack(value)


def decode_uint64(data: bytes) -> int:
    """Inverse of encode_uint64.

    Raises:
        struct.error: If data is not exactly 8 bytes
    """
    return _UINT64.unpack(data)[0]
