"""
Value codecs for kvshed fields and indexes.

A Codec is an explicit encode/decode pair supplied per field. The schema
layer never inspects values itself; it only wraps codec failures into
EncodeError / DecodeError so callers can tell bad data from a broken store.

Provided codecs:
- bytes_codec: raw bytes, unchanged
- string_codec: UTF-8 text
- uint64_codec: 8-byte big-endian unsigned integers (order preserving)
- json_codec(): JSON documents
- model_codec(Model): pydantic models, JSON encoded

Invariants:
    - encode() is deterministic for a fixed input
    - decode(encode(v)) reproduces v's observable fields
    - Codec failures never escape as bare ValueError/TypeError from a field

Example:
    >>> from pydantic import BaseModel
    >>> class Peer(BaseModel):
    ...     addr: str
    >>> codec = model_codec(Peer)
    >>> codec.decode(codec.encode(Peer(addr="1.2.3.4")))
    Peer(addr='1.2.3.4')
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from .errors import DecodeError, EncodeError
from .schema.keys import decode_uint64, encode_uint64

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

# Exceptions a codec may raise for bad input
CODEC_ERRORS = (ValueError, TypeError, OverflowError, struct.error)


@dataclass(frozen=True)
class Codec(Generic[T]):
    """An explicit serializer for one value shape.

    Attributes:
        encode: Turns a value into bytes
        decode: Turns stored bytes back into a value
        name: Label used in error messages
    """

    encode: Callable[[T], bytes]
    decode: Callable[[bytes], T]
    name: str = "custom"


def encode_value(
    codec: Codec[T],
    value: T,
    field_name: Optional[str] = None,
) -> bytes:
    """Encode value with codec.

    Raises:
        EncodeError: If the codec rejects the value or returns non-bytes
    """
    try:
        data = codec.encode(value)
    except CODEC_ERRORS as e:
        raise EncodeError(
            f"Cannot encode value for '{field_name}' with {codec.name} codec: {e}",
            field_name=field_name,
        ) from e
    if not isinstance(data, bytes):
        raise EncodeError(
            f"{codec.name} codec returned {type(data).__name__}, expected bytes",
            field_name=field_name,
        )
    return data


def decode_value(
    codec: Codec[T],
    data: bytes,
    field_name: Optional[str] = None,
    key: Optional[bytes] = None,
) -> T:
    """Decode stored bytes with codec.

    Raises:
        DecodeError: If the bytes cannot be decoded into the codec's shape
    """
    try:
        return codec.decode(data)
    except CODEC_ERRORS as e:
        raise DecodeError(
            f"Cannot decode value for '{field_name}' with {codec.name} codec: {e}",
            field_name=field_name,
            key=key,
        ) from e


def _encode_bytes(value: bytes) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"expected bytes, got {type(value).__name__}")
    return bytes(value)


def _encode_string(value: str) -> bytes:
    if not isinstance(value, str):
        raise TypeError(f"expected str, got {type(value).__name__}")
    return value.encode("utf-8")


def _encode_uint64(value: int) -> bytes:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected int, got {type(value).__name__}")
    if not 0 <= value < 2 ** 64:
        raise OverflowError(f"{value} does not fit in uint64")
    return encode_uint64(value)


bytes_codec: Codec[bytes] = Codec(encode=_encode_bytes, decode=bytes, name="bytes")

string_codec: Codec[str] = Codec(
    encode=_encode_string,
    decode=lambda data: data.decode("utf-8"),
    name="string",
)

uint64_codec: Codec[int] = Codec(encode=_encode_uint64, decode=decode_uint64, name="uint64")


def json_codec(sort_keys: bool = False) -> Codec[Any]:
    """JSON codec for plain dicts, lists and scalars.

    Args:
        sort_keys: Emit object keys sorted, making the encoding canonical
            across differing key orders of the input
    """

    def encode(value: Any) -> bytes:
        return json.dumps(
            value,
            separators=(",", ":"),
            sort_keys=sort_keys,
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")

    def decode(data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))

    return Codec(encode=encode, decode=decode, name="json")


def model_codec(model: Type[M]) -> Codec[M]:
    """JSON codec for a pydantic model class.

    Decoding validates the stored document against the model, so a shape
    change between releases surfaces as DecodeError instead of a half-filled
    object.
    """

    def encode(value: M) -> bytes:
        if not isinstance(value, model):
            raise TypeError(f"expected {model.__name__}, got {type(value).__name__}")
        return value.model_dump_json().encode("utf-8")

    def decode(data: bytes) -> M:
        return model.model_validate_json(data)

    return Codec(encode=encode, decode=decode, name=f"model[{model.__name__}]")
