"""
Schema Registry for kvshed.

The SchemaRegistry is the central authority for the shared keyspace.
It provides:
- Resolution of (name, kind) pairs to unique storage prefixes
- Lazy, persisted, monotonic id assignment
- Conflict detection when a name is reused with another kind
- Catalogue fingerprinting for inspection tooling

Invariants:
    - For a fixed (name, kind) the id never changes for the life of the store
    - Ids are assigned from a persisted counter and never reused
    - A new entry and the bumped counter are written in one atomic batch
    - That batch commits only if the persisted counter is unchanged since it
      was read
    - A name is bound to exactly one kind

How to change safely:
    - Never rewrite or delete catalogue records
    - Keep the catalogue layout in keys.py stable; bump CATALOGUE_VERSION
      and add a migration if it must change

Example:
    >>> from kvshed.store import InMemoryStore
    >>> from kvshed.schema import SchemaRegistry
    >>> registry = SchemaRegistry(InMemoryStore()).open()
    >>> registry.resolve("peer-metadata", "struct-json")
    b'\\x01\\x00\\x00\\x00\\x01'
    >>> registry.close()
"""

from __future__ import annotations

import hashlib
import json
import struct
import threading
from typing import Dict, Iterator, Optional, Union
import logging

from ..errors import (
    NotFoundError,
    RegistryClosedError,
    SchemaConflictError,
    SchemaCorruptionError,
    SchemaExhaustedError,
)
from ..store.base import KeyValueStore
from .keys import (
    CATALOGUE_COUNTER_KEY,
    CATALOGUE_ENTRY_PREFIX,
    CATALOGUE_VERSION_KEY,
    MAX_ID,
    decode_uint64,
    encode_prefix,
    encode_uint64,
    entry_key,
)
from .types import FieldKind, SchemaEntry

logger = logging.getLogger(__name__)

CATALOGUE_VERSION = 1


class SchemaRegistry:
    """Persistent catalogue of declared fields and indexes.

    The registry is bound to one store. It must be opened before use and
    closed at store shutdown; there is no process-wide instance, so every
    field and index receives the registry explicitly.

    Thread-safety:
        - Resolving a known (name, kind) is a lock-free dict lookup
        - Allocation of new ids is serialized by an internal lock
        - Registries on other handles of the same store are serialized by the
          store's guarded batch on the id counter

    Attributes:
        store: The key-value store holding both catalogue and data
        is_open: Whether the registry is usable

    Example:
        >>> registry = SchemaRegistry(store).open()
        >>> prefix = registry.resolve("counter", FieldKind.UINT64)
        >>> registry.resolve("counter", FieldKind.UINT64) == prefix
        True
    """

    def __init__(self, store: KeyValueStore) -> None:
        """Bind the registry to a store. Call open() before resolving."""
        self._store = store
        self._entries: Dict[str, SchemaEntry] = {}
        self._by_id: Dict[int, SchemaEntry] = {}
        self._next_id = 1
        self._open = False
        self._lock = threading.Lock()

    @property
    def store(self) -> KeyValueStore:
        """The store this registry namespaces."""
        return self._store

    @property
    def is_open(self) -> bool:
        """Whether open() has been called and close() has not."""
        return self._open

    def open(self) -> SchemaRegistry:
        """Load the persisted catalogue.

        A store without a catalogue is initialized with a version marker
        and an id counter.

        Returns:
            self, for chaining

        Raises:
            SchemaCorruptionError: If the catalogue cannot be decoded
            StoreError: If the store fails
        """
        with self._lock:
            self._load()
            self._open = True
        logger.debug(
            f"Schema registry opened with {len(self._entries)} entries, "
            f"next_id={self._next_id}"
        )
        return self

    def close(self) -> None:
        """End the registry lifecycle. The store is left open."""
        with self._lock:
            self._open = False
        logger.debug("Schema registry closed")

    def __enter__(self) -> SchemaRegistry:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _load(self) -> None:
        store = self._store

        try:
            raw_version: Optional[bytes] = store.get(CATALOGUE_VERSION_KEY)
        except NotFoundError:
            raw_version = None

        try:
            raw_counter: Optional[bytes] = store.get(CATALOGUE_COUNTER_KEY)
        except NotFoundError:
            raw_counter = None

        records = list(store.iterate(CATALOGUE_ENTRY_PREFIX))

        if raw_version is None:
            if records or raw_counter is not None:
                raise SchemaCorruptionError(
                    "Catalogue has records but no version marker",
                    key=CATALOGUE_VERSION_KEY,
                )
            batch = store.new_batch()
            batch.put(CATALOGUE_VERSION_KEY, str(CATALOGUE_VERSION).encode("ascii"))
            batch.put(CATALOGUE_COUNTER_KEY, encode_uint64(1))
            if not store.compare_and_write_batch(batch, CATALOGUE_VERSION_KEY, None):
                # Another registry initialized the catalogue first.
                self._load()
                return
            self._entries = {}
            self._by_id = {}
            self._next_id = 1
            logger.info("Initialized empty schema catalogue")
            return

        if raw_version != str(CATALOGUE_VERSION).encode("ascii"):
            raise SchemaCorruptionError(
                f"Unsupported catalogue version {raw_version!r}",
                key=CATALOGUE_VERSION_KEY,
            )

        next_id = self._decode_counter(raw_counter)

        entries: Dict[str, SchemaEntry] = {}
        by_id: Dict[int, SchemaEntry] = {}
        for key, value in records:
            entry = self._decode_entry(key, value)
            if entry.id in by_id:
                raise SchemaCorruptionError(
                    f"Id {entry.id} assigned to both '{by_id[entry.id].name}' "
                    f"and '{entry.name}'",
                    key=key,
                )
            if entry.id >= next_id:
                raise SchemaCorruptionError(
                    f"Entry '{entry.name}' has id {entry.id} but counter is at {next_id}",
                    key=key,
                )
            entries[entry.name] = entry
            by_id[entry.id] = entry

        self._entries = entries
        self._by_id = by_id
        self._next_id = next_id

    @staticmethod
    def _decode_counter(raw_counter: Optional[bytes]) -> int:
        """Decode the persisted id counter; ids start at 1."""
        if raw_counter is None:
            raise SchemaCorruptionError(
                "Catalogue id counter is missing", key=CATALOGUE_COUNTER_KEY
            )
        try:
            next_id = decode_uint64(raw_counter)
        except struct.error as e:
            raise SchemaCorruptionError(
                f"Catalogue id counter is malformed: {e}", key=CATALOGUE_COUNTER_KEY
            ) from e
        if next_id < 1:
            raise SchemaCorruptionError(
                f"Catalogue id counter is {next_id}, ids start at 1",
                key=CATALOGUE_COUNTER_KEY,
            )
        return next_id

    @staticmethod
    def _decode_entry(key: bytes, value: bytes) -> SchemaEntry:
        """Decode one catalogue record."""
        try:
            name = key[len(CATALOGUE_ENTRY_PREFIX):].decode("utf-8")
            doc = json.loads(value.decode("utf-8"))
            entry = SchemaEntry.from_dict({**doc, "name": name})
            encode_prefix(entry.id)
        except (ValueError, KeyError, TypeError) as e:
            raise SchemaCorruptionError(
                f"Cannot decode catalogue record: {e}", key=key
            ) from e
        if not name:
            raise SchemaCorruptionError("Catalogue record has an empty name", key=key)
        return entry

    def resolve(self, name: str, kind: Union[str, FieldKind]) -> bytes:
        """Return the storage prefix for (name, kind), assigning one if new.

        Args:
            name: Field or index name
            kind: Storage shape

        Returns:
            Fixed-width storage prefix

        Raises:
            SchemaConflictError: If name is recorded with a different kind
            SchemaExhaustedError: If no ids are left
            RegistryClosedError: If the registry is not open
            ValueError: If name is empty or kind is unknown
            StoreError: If persisting a new entry fails
        """
        return encode_prefix(self.resolve_entry(name, kind).id)

    def resolve_entry(self, name: str, kind: Union[str, FieldKind]) -> SchemaEntry:
        """Like resolve() but returns the full catalogue entry."""
        if not self._open:
            raise RegistryClosedError()
        if not isinstance(name, str) or not name:
            raise ValueError("Field name must be a non-empty string")
        field_kind = FieldKind.coerce(kind)

        entry = self._entries.get(name)
        if entry is not None:
            return self._check_kind(entry, field_kind)

        with self._lock:
            if not self._open:
                raise RegistryClosedError()
            entry = self._entries.get(name)
            if entry is not None:
                return self._check_kind(entry, field_kind)
            return self._allocate(name, field_kind)

    @staticmethod
    def _check_kind(entry: SchemaEntry, kind: FieldKind) -> SchemaEntry:
        if entry.kind is not kind:
            raise SchemaConflictError(entry.name, kind.value, entry.kind.value)
        return entry

    def _allocate(self, name: str, kind: FieldKind) -> SchemaEntry:
        """Persist a new entry. Caller holds the lock.

        Other registries may share the store (another handle, another
        process), so the persisted record and counter are re-read here and
        the batch commits only if the counter has not moved since.
        """
        store = self._store
        record_key = entry_key(name)

        while True:
            try:
                raw_record: Optional[bytes] = store.get(record_key)
            except NotFoundError:
                raw_record = None
            if raw_record is not None:
                existing = self._decode_entry(record_key, raw_record)
                self._remember(existing)
                logger.debug(f"Schema entry '{name}' was registered by another writer")
                return self._check_kind(existing, kind)

            try:
                raw_counter: Optional[bytes] = store.get(CATALOGUE_COUNTER_KEY)
            except NotFoundError:
                raw_counter = None
            schema_id = max(self._decode_counter(raw_counter), self._next_id)
            if schema_id > MAX_ID:
                raise SchemaExhaustedError(f"No more schema ids available for '{name}'")
            encode_prefix(schema_id)

            entry = SchemaEntry(name=name, kind=kind, id=schema_id)
            record = json.dumps({"id": schema_id, "kind": kind.value}, sort_keys=True)

            batch = store.new_batch()
            batch.put(record_key, record.encode("utf-8"))
            batch.put(CATALOGUE_COUNTER_KEY, encode_uint64(schema_id + 1))
            if store.compare_and_write_batch(batch, CATALOGUE_COUNTER_KEY, raw_counter):
                break
            logger.debug(f"Catalogue counter moved while registering '{name}', retrying")

        self._remember(entry)
        logger.info(f"Registered schema entry: {name} (kind={kind.value}, id={schema_id})")
        return entry

    def _remember(self, entry: SchemaEntry) -> None:
        """Add an entry to the in-memory catalogue. Caller holds the lock."""
        other = self._by_id.get(entry.id)
        if other is not None and other.name != entry.name:
            raise SchemaCorruptionError(
                f"Id {entry.id} assigned to both '{other.name}' and '{entry.name}'",
                key=entry_key(entry.name),
            )
        self._entries[entry.name] = entry
        self._by_id[entry.id] = entry
        self._next_id = max(self._next_id, entry.id + 1)

    def entry(self, name_or_id: Union[str, int]) -> Optional[SchemaEntry]:
        """Get a catalogue entry by name or id.

        Returns:
            SchemaEntry if found, None otherwise
        """
        if isinstance(name_or_id, int):
            return self._by_id.get(name_or_id)
        return self._entries.get(name_or_id)

    def entries(self) -> Iterator[SchemaEntry]:
        """Iterate over all entries in id order."""
        for schema_id in sorted(self._by_id):
            yield self._by_id[schema_id]

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def next_id(self) -> int:
        """Id the next new entry will receive."""
        return self._next_id

    def to_dict(self) -> dict:
        """Convert catalogue to dictionary representation, sorted by id."""
        return {
            "version": CATALOGUE_VERSION,
            "entries": [entry.to_dict() for entry in self.entries()],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Convert catalogue to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @property
    def fingerprint(self) -> str:
        """SHA-256 fingerprint of the catalogue in format 'sha256:<hash>'."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))
        hash_bytes = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
        return f"sha256:{hash_bytes}"
