"""
Unit tests for typed fields.

Tests cover:
- Get before put, put/get round trips, overwrite
- Batched writes across fields
- Error kinds for encode/decode failures and kind conflicts
- uint64 counters and vectors
"""

import pytest
from pydantic import BaseModel

from kvshed.codec import json_codec, model_codec
from kvshed.errors import (
    DecodeError,
    EncodeError,
    NotFoundError,
    SchemaConflictError,
    StoreClosedError,
)
from kvshed.fields import BytesField, StringField, StructField, Uint64Field, Uint64Vector
from kvshed.schema import SchemaRegistry
from kvshed.store import InMemoryStore


class PeerMetadata(BaseModel):
    addr: str


@pytest.fixture
def store():
    """Create a fresh in-memory store."""
    return InMemoryStore()


@pytest.fixture
def registry(store):
    """Create an opened registry on the store."""
    return SchemaRegistry(store).open()


class TestStructField:
    """Tests for StructField."""

    def test_get_before_put_raises_not_found(self, registry):
        """A field never written has no value."""
        field = StructField(registry, "peer-metadata", json_codec())

        with pytest.raises(NotFoundError):
            field.get()
        assert field.has() is False

    def test_put_then_get(self, registry):
        """get returns what put stored."""
        field = StructField(registry, "peer-metadata", json_codec())
        field.put({"addr": "1.2.3.4"})

        assert field.get() == {"addr": "1.2.3.4"}

    def test_put_overwrites(self, registry):
        """put replaces the whole value; nothing is merged."""
        field = StructField(registry, "peer-metadata", json_codec())
        field.put({"addr": "1.2.3.4", "port": 1})
        field.put({"addr": "5.6.7.8"})

        assert field.get() == {"addr": "5.6.7.8"}

    def test_handles_share_state(self, registry):
        """Two handles for the same field see each other's writes."""
        writer = StructField(registry, "peer-metadata", json_codec())
        reader = StructField(registry, "peer-metadata", json_codec())

        writer.put({"addr": "1.2.3.4"})

        assert reader.key == writer.key
        assert reader.get() == {"addr": "1.2.3.4"}

    def test_model_codec(self, registry):
        """pydantic models round-trip through a struct field."""
        field = StructField(registry, "peer", model_codec(PeerMetadata))
        field.put(PeerMetadata(addr="1.2.3.4"))

        assert field.get() == PeerMetadata(addr="1.2.3.4")

    def test_encode_error_writes_nothing(self, registry):
        """A value that cannot be encoded leaves the stored value alone."""
        field = StructField(registry, "peer-metadata", json_codec())
        field.put({"addr": "1.2.3.4"})

        with pytest.raises(EncodeError) as exc_info:
            field.put({"addr": {1, 2}})

        assert exc_info.value.field_name == "peer-metadata"
        assert field.get() == {"addr": "1.2.3.4"}

    def test_decode_error_on_drift(self, registry):
        """Stored bytes that no longer fit the model raise DecodeError."""
        StructField(registry, "peer", json_codec()).put({"address": "1.2.3.4"})
        field = StructField(registry, "peer", model_codec(PeerMetadata))

        with pytest.raises(DecodeError) as exc_info:
            field.get()

        assert exc_info.value.key == field.key

    def test_kind_conflict(self, registry):
        """Declaring 'counter' as uint64 then struct-json conflicts."""
        Uint64Field(registry, "counter")

        with pytest.raises(SchemaConflictError):
            StructField(registry, "counter", json_codec())

    def test_delete(self, registry):
        """delete removes the value."""
        field = StructField(registry, "peer-metadata", json_codec())
        field.put({"addr": "1.2.3.4"})
        field.delete()

        with pytest.raises(NotFoundError):
            field.get()

    def test_store_errors_pass_through(self, store, registry):
        """Store failures surface unchanged."""
        field = StructField(registry, "peer-metadata", json_codec())
        store.close()

        with pytest.raises(StoreClosedError):
            field.put({"addr": "1.2.3.4"})

    def test_repr(self, registry):
        field = StructField(registry, "peer-metadata", json_codec())

        assert "peer-metadata" in repr(field)
        assert field.key.hex() in repr(field)


class TestPutInBatch:
    """Tests for staged writes."""

    def test_staging_does_not_write(self, store, registry):
        """put_in_batch performs no store I/O."""
        field = StructField(registry, "peer-metadata", json_codec())
        batch = store.new_batch()
        keys_before = store.key_count()

        field.put_in_batch(batch, {"addr": "1.2.3.4"})

        assert store.key_count() == keys_before
        with pytest.raises(NotFoundError):
            field.get()

    def test_staging_works_on_closed_store(self, store, registry):
        """Staging cannot fail because the store is unavailable."""
        field = StructField(registry, "peer-metadata", json_codec())
        batch = store.new_batch()
        store.close()

        field.put_in_batch(batch, {"addr": "1.2.3.4"})

        assert len(batch) == 1

    def test_commit_matches_immediate_puts(self, registry):
        """A committed batch yields the same state as immediate puts."""
        store_a, store_b = InMemoryStore(), InMemoryStore()
        reg_a, reg_b = SchemaRegistry(store_a).open(), SchemaRegistry(store_b).open()

        meta_a = StructField(reg_a, "meta", json_codec())
        count_a = Uint64Field(reg_a, "count")
        meta_a.put({"v": 1})
        count_a.put(7)

        meta_b = StructField(reg_b, "meta", json_codec())
        count_b = Uint64Field(reg_b, "count")
        batch = store_b.new_batch()
        meta_b.put_in_batch(batch, {"v": 1})
        count_b.put_in_batch(batch, 7)
        store_b.write_batch(batch)

        assert store_a.dump() == store_b.dump()

    def test_crash_before_commit(self, store, registry):
        """A batch that is never committed leaves no trace."""
        meta = StructField(registry, "meta", json_codec())
        count = Uint64Field(registry, "count")
        batch = store.new_batch()
        meta.put_in_batch(batch, {"v": 1})
        count.put_in_batch(batch, 1)
        del batch

        assert not meta.has()
        assert not count.has()

    def test_crash_during_commit(self, store, registry):
        """A commit that fails partway exposes none of the staged writes."""
        meta = StructField(registry, "meta", json_codec())
        count = Uint64Field(registry, "count")
        batch = store.new_batch()
        meta.put_in_batch(batch, {"v": 1})
        count.put_in_batch(batch, 1)
        store.inject_failure(RuntimeError("power loss"), after_ops=1)

        with pytest.raises(RuntimeError):
            store.write_batch(batch)

        assert not meta.has()
        assert not count.has()

    def test_encode_error_stages_nothing(self, store, registry):
        field = StructField(registry, "meta", json_codec())
        batch = store.new_batch()

        with pytest.raises(EncodeError):
            field.put_in_batch(batch, {"v": object()})

        assert len(batch) == 0

    def test_delete_in_batch(self, store, registry):
        field = StringField(registry, "name")
        field.put("x")
        batch = store.new_batch()
        field.delete_in_batch(batch)

        assert field.get() == "x"
        store.write_batch(batch)
        assert not field.has()


class TestScalarFields:
    """Tests for BytesField, StringField and Uint64Field."""

    def test_bytes_field(self, registry):
        field = BytesField(registry, "blob")
        field.put(b"\x00\xff")

        assert field.get() == b"\x00\xff"

    def test_string_field(self, registry):
        field = StringField(registry, "label")
        field.put("héllo")

        assert field.get() == "héllo"

    def test_uint64_get_missing(self, registry):
        """uint64 fields also report absence as NotFoundError."""
        with pytest.raises(NotFoundError):
            Uint64Field(registry, "count").get()

    def test_uint64_inc_dec(self, registry):
        counter = Uint64Field(registry, "count")

        assert counter.inc() == 1
        assert counter.inc(4) == 5
        assert counter.dec(2) == 3
        assert counter.get() == 3

    def test_uint64_dec_saturates(self, registry):
        counter = Uint64Field(registry, "count")
        counter.put(2)

        assert counter.dec(5) == 0
        assert counter.get() == 0

    def test_uint64_inc_in_batch(self, store, registry):
        counter = Uint64Field(registry, "count")
        counter.put(10)
        batch = store.new_batch()

        assert counter.inc_in_batch(batch, 5) == 15
        assert counter.get() == 10

        store.write_batch(batch)
        assert counter.get() == 15

    def test_uint64_dec_in_batch(self, store, registry):
        counter = Uint64Field(registry, "count")
        batch = store.new_batch()

        assert counter.dec_in_batch(batch) == 0
        store.write_batch(batch)
        assert counter.get() == 0

    def test_uint64_overflow(self, registry):
        counter = Uint64Field(registry, "count")
        counter.put(2 ** 64 - 1)

        with pytest.raises(EncodeError):
            counter.inc()


class TestUint64Vector:
    """Tests for Uint64Vector."""

    def test_unset_reads_zero(self, registry):
        vector = Uint64Vector(registry, "bins")

        assert vector.get(0) == 0
        assert vector.get(12345) == 0

    def test_put_get_inc_dec(self, registry):
        vector = Uint64Vector(registry, "bins")
        vector.put(3, 10)

        assert vector.inc(3) == 11
        assert vector.dec(3, 20) == 0
        assert vector.inc(4, 2) == 2
        assert vector.get(3) == 0

    def test_batched(self, store, registry):
        vector = Uint64Vector(registry, "bins")
        batch = store.new_batch()
        vector.put_in_batch(batch, 1, 5)
        vector.inc_in_batch(batch, 2)
        vector.dec_in_batch(batch, 3)

        assert vector.get(1) == 0
        store.write_batch(batch)
        assert list(vector.items()) == [(1, 5), (2, 1), (3, 0)]

    def test_items_in_position_order(self, registry):
        vector = Uint64Vector(registry, "bins")
        for position in (300, 2, 256, 1):
            vector.put(position, position)

        assert [p for p, _ in vector.items()] == [1, 2, 256, 300]

    def test_negative_position_rejected(self, registry):
        with pytest.raises(ValueError):
            Uint64Vector(registry, "bins").get(-1)

    def test_vectors_isolated(self, registry):
        """Two vectors never see each other's elements."""
        a = Uint64Vector(registry, "a")
        b = Uint64Vector(registry, "b")
        a.put(1, 1)

        assert b.get(1) == 0
        assert list(b.items()) == []
