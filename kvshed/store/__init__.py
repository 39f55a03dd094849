"""
Ordered key-value store abstraction for kvshed.

This module provides a pluggable store interface supporting:
- SQLite (single file, recommended for production)
- In-memory (for testing)

The schema layer treats the store as a capability: point reads and writes,
atomic batches and ordered prefix iteration over raw byte keys.

Invariants:
    - write_batch() is all-or-nothing
    - iterate() yields keys in ascending byte order
    - get() on an absent key raises NotFoundError

How to change safely:
    - New backends must implement the KeyValueStore protocol
    - Verify batch atomicity with failure injection tests
"""

from .base import Batch, BatchOp, KeyValueStore, create_store, prefix_upper_bound
from .memory import InMemoryStore
from .sqlite import SqliteStore

__all__ = [
    # Protocol and types
    "KeyValueStore",
    "Batch",
    "BatchOp",
    "prefix_upper_bound",
    # Factory
    "create_store",
    # Implementations
    "InMemoryStore",
    "SqliteStore",
]
