"""
Unit tests for the schema registry.

Tests cover:
- Resolution idempotence
- Kind conflicts
- Prefix uniqueness
- Catalogue corruption detection
- Lifecycle (open/close)
- Concurrent allocation, including registries sharing one store
"""

import json
import random
import string
import threading

import pytest

from kvshed.errors import (
    RegistryClosedError,
    SchemaConflictError,
    SchemaCorruptionError,
    SchemaExhaustedError,
    StoreError,
)
from kvshed.schema import FieldKind, SchemaRegistry, decode_prefix, encode_prefix
from kvshed.schema.keys import (
    CATALOGUE_COUNTER_KEY,
    CATALOGUE_VERSION_KEY,
    MAX_ID,
    PREFIX_LENGTH,
    encode_uint64,
    entry_key,
)
from kvshed.store import InMemoryStore


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    @pytest.fixture
    def store(self):
        """Create a fresh in-memory store."""
        return InMemoryStore()

    @pytest.fixture
    def registry(self, store):
        """Create an opened registry."""
        return SchemaRegistry(store).open()

    def test_resolve_is_idempotent(self, registry):
        """Resolving twice yields the same prefix."""
        first = registry.resolve("peer-metadata", "struct-json")
        second = registry.resolve("peer-metadata", FieldKind.STRUCT_JSON)

        assert first == second
        assert len(registry) == 1

    def test_first_id_is_one(self, registry):
        """Ids start at one and prefixes have fixed width."""
        prefix = registry.resolve("a", "raw")

        assert decode_prefix(prefix) == 1
        assert len(prefix) == PREFIX_LENGTH

    def test_ids_are_monotonic(self, registry):
        """Each new name gets the next id."""
        ids = [registry.resolve_entry(f"field-{i}", "raw").id for i in range(5)]

        assert ids == [1, 2, 3, 4, 5]
        assert registry.next_id == 6

    def test_kind_conflict_raises(self, registry):
        """Same name with another kind raises SchemaConflictError."""
        registry.resolve("counter", "uint64")

        with pytest.raises(SchemaConflictError) as exc_info:
            registry.resolve("counter", "struct-json")

        assert exc_info.value.recorded_kind == "uint64"
        assert exc_info.value.requested_kind == "struct-json"
        assert exc_info.value.code == "SCHEMA_CONFLICT"

    def test_conflict_does_not_allocate(self, registry):
        """A conflicting request leaves the catalogue unchanged."""
        registry.resolve("counter", "uint64")
        fingerprint = registry.fingerprint

        with pytest.raises(SchemaConflictError):
            registry.resolve("counter", "index")

        assert registry.fingerprint == fingerprint
        assert registry.next_id == 2

    def test_prefixes_are_distinct(self, registry):
        """10,000 random names never collide."""
        rng = random.Random(1234)
        kinds = [k.value for k in FieldKind]
        names = set()
        while len(names) < 10_000:
            names.add("".join(rng.choices(string.ascii_letters + string.digits + "-_", k=12)))

        prefixes = {registry.resolve(name, rng.choice(kinds)) for name in names}

        assert len(prefixes) == len(names)
        for prefix in prefixes:
            assert len(prefix) == PREFIX_LENGTH

    def test_empty_name_rejected(self, registry):
        """Empty names are rejected."""
        with pytest.raises(ValueError):
            registry.resolve("", "raw")

    def test_unknown_kind_rejected(self, registry):
        """Unknown kinds are rejected."""
        with pytest.raises(ValueError, match="Unknown field kind"):
            registry.resolve("x", "struct-rlp")

    def test_resolve_before_open_raises(self, store):
        """The registry must be opened first."""
        registry = SchemaRegistry(store)

        with pytest.raises(RegistryClosedError):
            registry.resolve("x", "raw")

    def test_resolve_after_close_raises(self, registry):
        """Closed registries refuse resolution."""
        registry.resolve("x", "raw")
        registry.close()

        assert registry.is_open is False
        with pytest.raises(RegistryClosedError):
            registry.resolve("x", "raw")

    def test_context_manager(self, store):
        """The registry can be used as a context manager."""
        with SchemaRegistry(store) as registry:
            assert registry.is_open
            registry.resolve("x", "raw")

        assert registry.is_open is False

    def test_reload_keeps_ids(self, store, registry):
        """A second registry on the same store sees the same ids."""
        a = registry.resolve("a", "raw")
        b = registry.resolve("b", "index")
        registry.close()

        reopened = SchemaRegistry(store).open()

        assert reopened.resolve("a", "raw") == a
        assert reopened.resolve("b", "index") == b
        assert reopened.resolve_entry("c", "uint64").id == 3

    def test_ids_never_reused(self, store, registry):
        """Abandoned names keep their ids; new names get fresh ones."""
        registry.resolve("old", "raw")
        registry.close()

        reopened = SchemaRegistry(store).open()
        entry = reopened.resolve_entry("new", "raw")

        assert entry.id == 2

    def test_entry_lookup(self, registry):
        """Entries can be looked up by name or id without allocating."""
        registry.resolve("a", "uint64")

        assert registry.entry("a").kind is FieldKind.UINT64
        assert registry.entry(1).name == "a"
        assert registry.entry("missing") is None
        assert len(registry) == 1

    def test_to_dict_sorted_by_id(self, registry):
        """Catalogue export lists entries in id order."""
        registry.resolve("z", "raw")
        registry.resolve("a", "string")

        d = registry.to_dict()

        assert d["version"] == 1
        assert [e["name"] for e in d["entries"]] == ["z", "a"]
        assert json.loads(registry.to_json())["entries"][1]["kind"] == "string"

    def test_fingerprint_changes_with_catalogue(self, registry):
        """Adding an entry changes the fingerprint."""
        before = registry.fingerprint
        registry.resolve("a", "raw")

        assert before.startswith("sha256:")
        assert registry.fingerprint != before

    def test_failed_persist_leaves_state(self, store, registry):
        """If the store rejects the allocation batch, nothing is assigned."""
        store.inject_failure(StoreError("disk full"))

        with pytest.raises(StoreError):
            registry.resolve("a", "raw")

        assert registry.entry("a") is None
        assert registry.resolve_entry("a", "raw").id == 1

    def test_exhausted_ids(self, store):
        """Allocation past the id space raises SchemaExhaustedError."""
        store.put(CATALOGUE_VERSION_KEY, b"1")
        store.put(CATALOGUE_COUNTER_KEY, encode_uint64(MAX_ID + 1))
        registry = SchemaRegistry(store).open()

        with pytest.raises(SchemaExhaustedError):
            registry.resolve("a", "raw")


class TestConcurrentResolution:
    """Tests for allocation under concurrent and shared-store use."""

    @pytest.fixture
    def store(self):
        """Create a fresh in-memory store."""
        return InMemoryStore()

    def test_parallel_distinct_names(self, store):
        """200 threads resolving distinct names get pairwise distinct prefixes."""
        registry = SchemaRegistry(store).open()
        barrier = threading.Barrier(200)
        results = {}
        errors = []

        def worker(i):
            barrier.wait()
            try:
                results[i] = registry.resolve(f"field-{i}", "raw")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(200)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results.values())) == 200
        assert sorted(decode_prefix(p) for p in results.values()) == list(range(1, 201))
        assert registry.next_id == 201

    def test_parallel_same_name(self, store):
        """Threads racing on one name all see a single id."""
        registry = SchemaRegistry(store).open()
        barrier = threading.Barrier(50)
        results = []

        def worker():
            barrier.wait()
            results.append(registry.resolve("shared", "index"))

        threads = [threading.Thread(target=worker) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 50
        assert len(set(results)) == 1
        assert len(registry) == 1

    def test_two_registries_one_store(self, store):
        """Registries sharing a store never hand out the same id."""
        first = SchemaRegistry(store).open()
        second = SchemaRegistry(store).open()

        a = first.resolve_entry("a", "raw")
        b = second.resolve_entry("b", "raw")
        c = first.resolve_entry("c", "raw")

        assert [a.id, b.id, c.id] == [1, 2, 3]
        assert SchemaRegistry(store).open().next_id == 4

    def test_second_registry_reuses_persisted_entry(self, store):
        """A name registered through another registry keeps its id."""
        first = SchemaRegistry(store).open()
        second = SchemaRegistry(store).open()

        prefix = first.resolve("peers", "index")

        assert second.resolve("peers", "index") == prefix
        assert second.next_id == 2

    def test_second_registry_detects_conflict(self, store):
        """A kind recorded through another registry conflicts."""
        first = SchemaRegistry(store).open()
        second = SchemaRegistry(store).open()
        first.resolve("counter", "uint64")

        with pytest.raises(SchemaConflictError):
            second.resolve("counter", "struct-json")

        assert SchemaRegistry(store).open().next_id == 2

    def test_parallel_open_of_empty_store(self, store):
        """Registries opening an empty store together initialize it once."""
        barrier = threading.Barrier(20)
        registries = []

        def worker():
            barrier.wait()
            registries.append(SchemaRegistry(store).open())

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        ids = [r.resolve_entry(f"field-{i}", "raw").id for i, r in enumerate(registries)]
        assert sorted(ids) == list(range(1, 21))

    def test_parallel_registries_distinct_names(self, store):
        """Threads spread over two registries still get distinct ids."""
        registries = [SchemaRegistry(store).open(), SchemaRegistry(store).open()]
        barrier = threading.Barrier(100)
        results = {}

        def worker(i):
            barrier.wait()
            results[i] = registries[i % 2].resolve_entry(f"field-{i}", "raw").id

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(100)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results.values()) == list(range(1, 101))
        reopened = SchemaRegistry(store).open()
        assert reopened.next_id == 101
        assert len(reopened) == 100


class TestCatalogueCorruption:
    """Tests for SchemaCorruptionError on open."""

    @pytest.fixture
    def store(self):
        """Store holding a valid catalogue with one entry."""
        store = InMemoryStore()
        registry = SchemaRegistry(store).open()
        registry.resolve("a", "raw")
        registry.close()
        return store

    def test_undecodable_entry(self, store):
        """Garbage in an entry record is corruption."""
        store.put(entry_key("a"), b"\xff\xfe not json")

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_unknown_kind_in_entry(self, store):
        """An unknown kind in an entry record is corruption."""
        store.put(entry_key("a"), b'{"id": 1, "kind": "mystery"}')

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_missing_id_field(self, store):
        """An entry without an id is corruption."""
        store.put(entry_key("a"), b'{"kind": "raw"}')

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_duplicate_id(self, store):
        """Two names sharing an id is corruption."""
        store.put(CATALOGUE_COUNTER_KEY, encode_uint64(5))
        store.put(entry_key("b"), b'{"id": 1, "kind": "raw"}')

        with pytest.raises(SchemaCorruptionError, match="assigned to both"):
            SchemaRegistry(store).open()

    def test_counter_behind_entries(self, store):
        """A counter that would hand out an existing id is corruption."""
        store.put(CATALOGUE_COUNTER_KEY, encode_uint64(1))

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_zero_counter(self, store):
        """A counter of zero would hand out the invalid id 0."""
        store.delete(entry_key("a"))
        store.put(CATALOGUE_COUNTER_KEY, encode_uint64(0))

        with pytest.raises(SchemaCorruptionError, match="ids start at 1"):
            SchemaRegistry(store).open()

    def test_boolean_id(self, store):
        """A JSON boolean is not an id."""
        store.put(entry_key("a"), b'{"id": true, "kind": "raw"}')

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_fractional_id(self, store):
        """A fractional id is not truncated."""
        store.put(entry_key("a"), b'{"id": 1.9, "kind": "raw"}')

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_non_object_record(self, store):
        """A record that is not a JSON object is corruption."""
        store.put(entry_key("a"), b'[1, "raw"]')

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_malformed_counter(self, store):
        """A counter that is not 8 bytes is corruption."""
        store.put(CATALOGUE_COUNTER_KEY, b"\x01")

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()

    def test_unknown_version(self, store):
        """An unknown catalogue version is corruption."""
        store.put(CATALOGUE_VERSION_KEY, b"99")

        with pytest.raises(SchemaCorruptionError, match="version"):
            SchemaRegistry(store).open()

    def test_missing_version_with_entries(self, store):
        """Entries without a version marker are corruption."""
        store.delete(CATALOGUE_VERSION_KEY)

        with pytest.raises(SchemaCorruptionError):
            SchemaRegistry(store).open()


class TestKeys:
    """Tests for key derivation helpers."""

    def test_prefix_round_trip(self):
        """decode_prefix inverts encode_prefix."""
        assert decode_prefix(encode_prefix(42)) == 42

    def test_prefix_out_of_range(self):
        """Id zero and ids beyond uint32 are rejected."""
        with pytest.raises(ValueError):
            encode_prefix(0)
        with pytest.raises(ValueError):
            encode_prefix(MAX_ID + 1)

    def test_prefixes_do_not_nest(self):
        """No prefix is a prefix of another."""
        prefixes = [encode_prefix(i) for i in (1, 2, 255, 256, 65536)]
        for a in prefixes:
            for b in prefixes:
                if a != b:
                    assert not b.startswith(a)

    def test_prefix_order_follows_id(self):
        """Prefixes sort in id order."""
        assert encode_prefix(255) < encode_prefix(256) < encode_prefix(65536)
