"""
schema_registry_sdk.tier0_core.errors
──────────────────────────────────────
Standard error taxonomy for the registry client. Every error carries a stable
machine-readable code and optional metadata, and every error raised by the
SDK derives from SchemaRegistryError so callers can catch one base class.

Local recovery is limited to retrying idempotent registry reads; everything
else propagates to the caller unchanged.
"""
from __future__ import annotations

from typing import Any


# ── Base error ────────────────────────────────────────────────────────────────

class SchemaRegistryError(Exception):
    """
    Base class for all registry client errors. Every error has:
    - code: stable machine-readable string (snake_case)
    - detail: human-readable context
    - metadata: structured fields (subject, registry_id, ...) for logs
    """

    code: str = "schema_registry_error"

    def __init__(self, detail: str = "Schema registry error.", **metadata: Any) -> None:
        self.detail = detail
        self.metadata = metadata
        super().__init__(detail)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"error": {"code": self.code, "message": self.detail}}
        if self.metadata:
            d["error"]["metadata"] = dict(self.metadata)
        return d


# ── Schema errors ─────────────────────────────────────────────────────────────

class SchemaCompilationError(SchemaRegistryError):
    """Schema text could not be parsed or compiled by its format compiler."""
    code = "schema_compilation_error"


class InvalidSchemaError(SchemaRegistryError):
    """Compiled schema breaks a format-specific structural rule."""
    code = "invalid_schema"


class MissingMetadataError(SchemaRegistryError):
    """A subject cannot be derived from the schema; pass one explicitly."""
    code = "missing_metadata"


class ArgumentError(SchemaRegistryError):
    """A required argument or option is missing or malformed."""
    code = "argument_error"


class CompatibilityError(SchemaRegistryError):
    """Requested compatibility differs from the subject's existing setting."""
    code = "compatibility_error"


# ── Payload errors ────────────────────────────────────────────────────────────

class WireFormatError(SchemaRegistryError):
    """Buffer is not a valid magic-byte + schema-id envelope."""
    code = "wire_format_error"


class EncodingError(SchemaRegistryError):
    """Payload does not conform to the schema it is being encoded with."""
    code = "encoding_error"


class DecodingError(SchemaRegistryError):
    """Payload bytes cannot be decoded with the writer (and reader) schema."""
    code = "decoding_error"


# ── Registry errors ───────────────────────────────────────────────────────────

class RegistryUnavailableError(SchemaRegistryError):
    """Registry unreachable or failing after retries were exhausted."""
    code = "registry_unavailable"


class RegistryResponseError(SchemaRegistryError):
    """Registry answered with a non-retryable HTTP error."""
    code = "registry_response_error"

    def __init__(
        self,
        detail: str = "Registry rejected the request.",
        status_code: int | None = None,
        error_code: int | None = None,
        **metadata: Any,
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(detail, status_code=status_code, error_code=error_code, **metadata)


class SchemaNotFoundError(RegistryResponseError):
    """Subject, version, schema id or subject config does not exist."""
    code = "schema_not_found"


__all__ = [
    "SchemaRegistryError",
    "SchemaCompilationError",
    "InvalidSchemaError",
    "MissingMetadataError",
    "ArgumentError",
    "CompatibilityError",
    "WireFormatError",
    "EncodingError",
    "DecodingError",
    "RegistryUnavailableError",
    "RegistryResponseError",
    "SchemaNotFoundError",
]
