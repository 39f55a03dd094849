"""
Error types for kvshed.

This module defines all exception types raised by the schema layer:
- ShedError: Base exception
- NotFoundError: No value stored for a field or index entry
- SchemaConflictError: Name already registered with a different kind
- SchemaCorruptionError: Persisted catalogue cannot be decoded
- SchemaExhaustedError: No more ids can be assigned
- RegistryClosedError: Registry used outside its lifecycle
- EncodeError / DecodeError: Value (de)serialization failures
- StoreError / StoreClosedError: Failures of the underlying key-value store

Invariants:
    - All errors inherit from ShedError
    - NotFoundError is an expected condition, never logged by this layer
    - Errors carry a code and details so callers can tell "absent"
      from "broken" from "store unavailable"
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ShedError(Exception):
    """Base exception for all kvshed errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SHED_ERROR"
        self.details = details or {}


class NotFoundError(ShedError):
    """No value is stored under the requested key.

    Raised when:
    - A field has never been written (or was deleted)
    - An index entry is absent
    - An index is empty and first/last is requested
    """

    def __init__(self, message: str, key: Optional[bytes] = None) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"key": key.hex() if key is not None else None},
        )
        self.key = key


class SchemaConflictError(ShedError):
    """A name was requested with a different kind than recorded.

    This is a programming error in the declaring subsystem: two unrelated
    pieces of data would otherwise alias the same keys.
    """

    def __init__(self, name: str, requested_kind: str, recorded_kind: str) -> None:
        super().__init__(
            f"Field '{name}' requested as '{requested_kind}' "
            f"but recorded as '{recorded_kind}'",
            code="SCHEMA_CONFLICT",
            details={
                "name": name,
                "requested_kind": requested_kind,
                "recorded_kind": recorded_kind,
            },
        )
        self.name = name
        self.requested_kind = requested_kind
        self.recorded_kind = recorded_kind


class SchemaCorruptionError(ShedError):
    """The persisted schema catalogue cannot be decoded."""

    def __init__(self, message: str, key: Optional[bytes] = None) -> None:
        super().__init__(
            message,
            code="SCHEMA_CORRUPTION",
            details={"key": key.hex() if key is not None else None},
        )
        self.key = key


class SchemaExhaustedError(ShedError):
    """No more schema ids are available."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="SCHEMA_EXHAUSTED")


class RegistryClosedError(ShedError):
    """The schema registry was used after close()."""

    def __init__(self, message: str = "Schema registry is closed") -> None:
        super().__init__(message, code="REGISTRY_CLOSED")


class EncodeError(ShedError):
    """A value could not be serialized for storage."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message, code="ENCODE_ERROR", details={"field": field_name})
        self.field_name = field_name


class DecodeError(ShedError):
    """Stored bytes could not be deserialized into the requested shape.

    Usually means schema drift (the value shape changed between releases)
    or corruption of the stored payload.
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        key: Optional[bytes] = None,
    ) -> None:
        super().__init__(
            message,
            code="DECODE_ERROR",
            details={
                "field": field_name,
                "key": key.hex() if key is not None else None,
            },
        )
        self.field_name = field_name
        self.key = key


class StoreError(ShedError):
    """The underlying key-value store failed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="STORE_ERROR", details={"path": path})
        self.path = path


class StoreClosedError(StoreError):
    """The underlying key-value store is closed."""

    def __init__(self, message: str = "Store is closed", path: Optional[str] = None) -> None:
        super().__init__(message, path=path)
        self.code = "STORE_CLOSED"
