"""
schema_registry_sdk.tier4_advanced.helpers
───────────────────────────────────────────
The one polymorphism seam of the SDK. Each schema family ships a helper that
satisfies SchemaHelper; the registry client looks the helper up by the
family tag on the schema and never branches on format itself.

Families:
  AVRO      → AvroHelper        (fastavro)
  PROTOBUF  → ProtobufHelper    (proto-schema-parser + protobuf)
  JSON      → JsonSchemaHelper  (jsonschema + referencing)
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from schema_registry_sdk.tier0_core.errors import ArgumentError
from schema_registry_sdk.tier0_core.types import (
    ConfluentSchema,
    SchemaReference,
    SchemaResponse,
    SchemaType,
    Subject,
)

FormatOptions = dict[str, Any]


@runtime_checkable
class CompiledSchema(Protocol):
    """Executable artifact produced by a helper. Never mutated after creation."""

    schema_type: SchemaType

    def encode(self, payload: Any) -> bytes: ...
    def decode(self, data: bytes, **options: Any) -> Any: ...
    def is_valid(self, payload: Any) -> bool: ...


@runtime_checkable
class SchemaHelper(Protocol):
    schema_type: SchemaType

    def compile(self, schema: ConfluentSchema, options: FormatOptions | None = None) -> CompiledSchema: ...
    def validate(self, compiled: CompiledSchema) -> None: ...
    def get_subject(self, schema: ConfluentSchema, separator: str) -> Subject: ...
    def to_confluent_schema(self, response: SchemaResponse) -> ConfluentSchema: ...
    def get_references(self, schema: ConfluentSchema) -> list[SchemaReference] | None: ...
    def update_options_from_references(
        self, options: FormatOptions | None, referred_schemas: dict[str, str]
    ) -> FormatOptions: ...


_helpers: dict[SchemaType, SchemaHelper] | None = None


def _build_helpers() -> dict[SchemaType, SchemaHelper]:
    from schema_registry_sdk.tier4_advanced.avro import AvroHelper
    from schema_registry_sdk.tier4_advanced.json_schema import JsonSchemaHelper
    from schema_registry_sdk.tier4_advanced.protobuf import ProtobufHelper

    return {
        SchemaType.AVRO: AvroHelper(),
        SchemaType.PROTOBUF: ProtobufHelper(),
        SchemaType.JSON: JsonSchemaHelper(),
    }


def get_helper(schema_type: SchemaType | str) -> SchemaHelper:
    """Return the helper for a schema family."""
    global _helpers
    if _helpers is None:
        _helpers = _build_helpers()
    try:
        return _helpers[SchemaType(schema_type)]
    except ValueError as exc:
        raise ArgumentError(f"Unsupported schema type: {schema_type!r}") from exc


__all__ = ["CompiledSchema", "SchemaHelper", "FormatOptions", "get_helper"]
