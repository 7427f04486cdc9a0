"""
schema_registry_sdk.tier4_advanced.json_schema
───────────────────────────────────────────────
Document-validation family. Payloads travel as compact UTF-8 JSON and are
validated against the schema on both encode and decode.

The validator class follows the document's "$schema" (Draft 7 when absent).
Referenced schemas are served from a referencing.Registry, keyed by the
reference name and by their own "$id" when they declare one.

Options:
  references        reference name → schema text, filled in by
                    update_options_from_references
  validate_formats  also enforce "format" keywords (default False)
"""
from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, best_match
from jsonschema.validators import validator_for
from referencing import Registry, Resource
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT7

from schema_registry_sdk.tier0_core.errors import (
    DecodingError,
    EncodingError,
    InvalidSchemaError,
    MissingMetadataError,
    SchemaCompilationError,
    SchemaRegistryError,
)
from schema_registry_sdk.tier0_core.types import (
    ConfluentSchema,
    SchemaReference,
    SchemaResponse,
    SchemaType,
    Subject,
)


def _load(text: str, what: str = "JSON schema") -> Any:
    try:
        document = json.loads(text)
    except ValueError as exc:
        raise SchemaCompilationError(f"{what} is not valid JSON: {exc}") from exc
    if not isinstance(document, (dict, bool)):
        raise SchemaCompilationError(f"{what} must be an object or a boolean")
    return document


def _build_registry(references: dict[str, str]) -> Registry:
    resources: list[tuple[str, Resource]] = []
    for name, text in references.items():
        document = _load(text, f"Referenced schema {name!r}")
        resource = Resource.from_contents(document, default_specification=DRAFT7)
        resources.append((name, resource))
        if isinstance(document, dict) and document.get("$id") and document["$id"] != name:
            resources.append((document["$id"], resource))
    return Registry().with_resources(resources)


# Keywords whose values are data, not subschemas.
_DATA_KEYWORDS = frozenset({"const", "default", "enum", "examples"})


def _iter_refs(node: Any) -> Iterator[str]:
    """Every "$ref" of the root resource; subschemas with their own "$id" are skipped."""
    if isinstance(node, dict):
        if isinstance(node.get("$ref"), str):
            yield node["$ref"]
        for key, value in node.items():
            if key in _DATA_KEYWORDS:
                continue
            if isinstance(value, dict) and isinstance(value.get("$id"), str):
                continue
            yield from _iter_refs(value)
    elif isinstance(node, list):
        for item in node:
            yield from _iter_refs(item)


class JsonCompiled:
    schema_type = SchemaType.JSON

    def __init__(self, document: Any, validator: Any, registry: Registry) -> None:
        self.document = document
        self.validator = validator
        self.registry = registry

    @property
    def name(self) -> str | None:
        if isinstance(self.document, dict):
            return self.document.get("title") or self.document.get("$id")
        return None

    def _first_error(self, payload: Any, error_cls: type[SchemaRegistryError]) -> Any | None:
        try:
            return best_match(self.validator.iter_errors(payload))
        except Unresolvable as exc:
            raise error_cls(
                f"Cannot resolve reference in JSON schema {self.name}: {exc}"
            ) from exc

    def is_valid(self, payload: Any) -> bool:
        try:
            return self._first_error(payload, EncodingError) is None
        except EncodingError:
            return False

    def encode(self, payload: Any) -> bytes:
        error = self._first_error(payload, EncodingError)
        if error is not None:
            raise EncodingError(
                f"Payload does not match JSON schema {self.name}: {error.message}",
                path=list(error.absolute_path),
            )
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    def decode(self, data: bytes, **_: Any) -> Any:
        try:
            payload = json.loads(data.decode("utf-8"))
        except ValueError as exc:
            raise DecodingError(f"Payload is not valid UTF-8 JSON: {exc}") from exc
        error = self._first_error(payload, DecodingError)
        if error is not None:
            raise DecodingError(
                f"Decoded payload does not match JSON schema {self.name}: {error.message}",
                path=list(error.absolute_path),
            )
        return payload


class JsonSchemaHelper:
    schema_type = SchemaType.JSON

    def compile(self, schema: ConfluentSchema, options: dict[str, Any] | None = None) -> JsonCompiled:
        opts = options or {}
        document = _load(schema.schema)
        validator_cls = validator_for(document, default=Draft7Validator)
        registry = _build_registry(dict(opts.get("references") or {}))
        format_checker = validator_cls.FORMAT_CHECKER if opts.get("validate_formats") else None
        validator = validator_cls(document, registry=registry, format_checker=format_checker)
        return JsonCompiled(document, validator, registry)

    def validate(self, compiled: JsonCompiled) -> None:
        try:
            type(compiled.validator).check_schema(compiled.document)
        except SchemaError as exc:
            raise InvalidSchemaError(f"Invalid JSON schema: {exc.message}") from exc
        if not isinstance(compiled.document, dict):
            return
        # check_schema does not follow references.
        root = Resource.from_contents(compiled.document, default_specification=DRAFT7)
        resolver = compiled.registry.resolver_with_root(root)
        for ref in _iter_refs(compiled.document):
            try:
                resolver.lookup(ref)
            except Unresolvable as exc:
                raise InvalidSchemaError(f"Unresolvable reference {ref!r} in JSON schema") from exc

    def get_subject(self, schema: ConfluentSchema, separator: str) -> Subject:
        raise MissingMetadataError("JSON schemas need an explicit subject")

    def to_confluent_schema(self, response: SchemaResponse) -> ConfluentSchema:
        return ConfluentSchema(
            type=SchemaType.JSON,
            schema=response.schema,
            references=tuple(response.references) or None,
        )

    def get_references(self, schema: ConfluentSchema) -> list[SchemaReference] | None:
        return list(schema.references or ())

    def update_options_from_references(
        self, options: dict[str, Any] | None, referred_schemas: dict[str, str]
    ) -> dict[str, Any]:
        updated = dict(options or {})
        updated["references"] = {**(updated.get("references") or {}), **referred_schemas}
        return updated


__all__ = ["JsonSchemaHelper", "JsonCompiled"]
