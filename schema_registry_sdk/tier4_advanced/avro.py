"""
schema_registry_sdk.tier4_advanced.avro
────────────────────────────────────────
Record-binary family. Schemas compile with fastavro; payloads are written
schemaless (the registry id in the envelope stands in for the schema).

Decoding accepts a reader schema, so standard Avro resolution applies: reader
fields missing from the writer take their default, writer fields missing from
the reader are dropped.

Schema references are not supported for this family.
"""
from __future__ import annotations

import io
import json
from typing import Any

from fastavro import parse_schema, schemaless_reader, schemaless_writer
from fastavro.validation import ValidationError, validate

from schema_registry_sdk.tier0_core.errors import (
    DecodingError,
    EncodingError,
    InvalidSchemaError,
    MissingMetadataError,
    SchemaCompilationError,
)
from schema_registry_sdk.tier0_core.types import (
    ConfluentSchema,
    SchemaReference,
    SchemaResponse,
    SchemaType,
    Subject,
)

ReaderSchema = ConfluentSchema | dict | str


def _load(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        raise SchemaCompilationError(f"Avro schema is not valid JSON: {exc}") from exc


def _parse(raw: Any, options: dict[str, Any]) -> Any:
    try:
        return parse_schema(raw, **options)
    except Exception as exc:
        raise SchemaCompilationError(f"Invalid Avro schema: {exc}") from exc


class AvroCompiled:
    schema_type = SchemaType.AVRO

    def __init__(self, raw: Any, parsed: Any, options: dict[str, Any]) -> None:
        self.raw = raw
        self.parsed = parsed
        self._options = options

    @property
    def name(self) -> str | None:
        if isinstance(self.parsed, dict):
            return self.parsed.get("name")
        return None

    def is_valid(self, payload: Any) -> bool:
        return validate(payload, self.parsed, raise_errors=False)

    def encode(self, payload: Any) -> bytes:
        try:
            validate(payload, self.parsed, raise_errors=True)
        except ValidationError as exc:
            raise EncodingError(
                f"Payload does not match Avro schema {self.name}: {exc}",
                schema_name=self.name,
            ) from exc
        buf = io.BytesIO()
        try:
            schemaless_writer(buf, self.parsed, payload)
        except (TypeError, ValueError) as exc:
            raise EncodingError(f"Cannot write Avro payload: {exc}", schema_name=self.name) from exc
        return buf.getvalue()

    def decode(self, data: bytes, reader_schema: ReaderSchema | None = None, **_: Any) -> Any:
        reader = self._reader(reader_schema) if reader_schema is not None else None
        try:
            return schemaless_reader(io.BytesIO(data), self.parsed, reader)
        except Exception as exc:
            raise DecodingError(
                f"Cannot decode Avro payload with schema {self.name}: {exc}",
                schema_name=self.name,
            ) from exc

    def _reader(self, reader_schema: ReaderSchema) -> Any:
        if isinstance(reader_schema, ConfluentSchema):
            raw = _load(reader_schema.schema)
        elif isinstance(reader_schema, str):
            raw = _load(reader_schema)
        else:
            raw = reader_schema
        return _parse(raw, self._options)


class AvroHelper:
    schema_type = SchemaType.AVRO

    def compile(self, schema: ConfluentSchema, options: dict[str, Any] | None = None) -> AvroCompiled:
        opts = dict(options or {})
        raw = _load(schema.schema)
        return AvroCompiled(raw, _parse(raw, opts), opts)

    def validate(self, compiled: AvroCompiled) -> None:
        if not compiled.name:
            raise InvalidSchemaError(f"Invalid name: {compiled.name}")

    def get_subject(self, schema: ConfluentSchema, separator: str) -> Subject:
        raw = _load(schema.schema)
        namespace = raw.get("namespace") if isinstance(raw, dict) else None
        if not namespace:
            raise MissingMetadataError(f"Invalid namespace: {namespace}")
        return Subject(name=separator.join([namespace, raw["name"]]))

    def to_confluent_schema(self, response: SchemaResponse) -> ConfluentSchema:
        return ConfluentSchema(type=SchemaType.AVRO, schema=response.schema)

    def get_references(self, schema: ConfluentSchema) -> list[SchemaReference] | None:
        return None

    def update_options_from_references(
        self, options: dict[str, Any] | None, referred_schemas: dict[str, str]
    ) -> dict[str, Any]:
        return dict(options or {})


__all__ = ["AvroHelper", "AvroCompiled"]
