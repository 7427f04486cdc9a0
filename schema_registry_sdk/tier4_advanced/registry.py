"""
schema_registry_sdk.tier4_advanced.registry
────────────────────────────────────────────
Schema registry client. Registers Avro / Protobuf / JSON schemas and
encodes or decodes payloads framed with the registry wire envelope, so
producers and consumers share schemas without shipping them in messages.

Compiled schemas and registered ids are cached per client; concurrent calls
for the same schema or id share one network round trip.

Usage::

    async with SchemaRegistry(RegistryConfig(host="http://registry:8081")) as registry:
        schema = ConfluentSchema(type=SchemaType.AVRO, schema=avro_text)
        registered = await registry.register(schema)
        buffer = await registry.encode(registered.id, {"fullName": "John Doe"})
        value = await registry.decode(buffer)
"""
from __future__ import annotations

import json
from typing import Any

import httpx

from schema_registry_sdk.tier0_core.config import RegistryConfig, get_config
from schema_registry_sdk.tier0_core.errors import (
    ArgumentError,
    CompatibilityError,
    SchemaNotFoundError,
)
from schema_registry_sdk.tier0_core.logging import get_logger
from schema_registry_sdk.tier0_core.types import (
    Compatibility,
    ConfluentSchema,
    RegisteredSchema,
    SchemaReference,
    SchemaResponse,
    SchemaType,
    Subject,
)
from schema_registry_sdk.tier1_runtime.wire import frame, unframe
from schema_registry_sdk.tier2_reliability.cache import SchemaRegistryCache
from schema_registry_sdk.tier3_platform.api_client import RegistryApiClient
from schema_registry_sdk.tier4_advanced.helpers import (
    CompiledSchema,
    FormatOptions,
    SchemaHelper,
    get_helper,
)

log = get_logger(__name__)

_DEFAULT: Any = object()


def _as_confluent_schema(schema: ConfluentSchema | dict[str, Any]) -> ConfluentSchema:
    # A bare dict is taken to be a raw Avro schema.
    if isinstance(schema, ConfluentSchema):
        return schema
    if isinstance(schema, dict):
        return ConfluentSchema(type=SchemaType.AVRO, schema=json.dumps(schema))
    raise ArgumentError(f"Expected ConfluentSchema or Avro schema dict, got {type(schema).__name__}")


def _compatibility_level(value: Compatibility | str | None) -> Compatibility | None:
    if value is None:
        return None
    try:
        return Compatibility(value.upper() if isinstance(value, str) else value)
    except ValueError as exc:
        raise ArgumentError(f"Unknown compatibility level: {value!r}") from exc


def _request_body(schema: ConfluentSchema) -> dict[str, Any]:
    body: dict[str, Any] = {"schema": schema.schema}
    # The registry treats a missing schemaType as AVRO.
    if schema.type is not SchemaType.AVRO:
        body["schemaType"] = schema.type.value
    if schema.references:
        body["references"] = [ref.as_dict() for ref in schema.references]
    return body


class SchemaRegistry:
    """
    Async client for a schema registry.

    Args:
        config:    Registry settings; defaults to get_config() (env driven).
        options:   Per-family compiler options, e.g.
                   {SchemaType.PROTOBUF: {"message_name": "Order"}}.
        transport: Optional httpx transport (tests, custom TLS or proxies).
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        *,
        options: dict[SchemaType | str, FormatOptions] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or get_config()
        self.options: dict[SchemaType, FormatOptions] = {
            SchemaType(key): dict(value) for key, value in (options or {}).items()
        }
        self.cache = SchemaRegistryCache()
        self.api = RegistryApiClient(self.config, transport=transport)

    async def __aenter__(self) -> SchemaRegistry:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.api.aclose()

    # ── Registration ──────────────────────────────────────────────────────────

    async def register(
        self,
        schema: ConfluentSchema | dict[str, Any],
        *,
        subject: str | None = None,
        compatibility: Compatibility | str | None = _DEFAULT,
        separator: str | None = None,
    ) -> RegisteredSchema:
        """
        Register a schema and return its registry id.

        Avro schemas derive their subject from namespace and name unless one
        is given; Protobuf and JSON schemas require an explicit subject. The
        schema is compiled and validated locally before any network call.
        When a compatibility level is requested and the subject already has
        a different one, CompatibilityError is raised and nothing is written.
        """
        confluent_schema = _as_confluent_schema(schema)
        if subject is None and confluent_schema.type is not SchemaType.AVRO:
            raise ArgumentError(
                f"Must provide subject for {confluent_schema.type.value} schemas"
            )

        helper = get_helper(confluent_schema.type)
        compiled = await self._compile(helper, confluent_schema)
        helper.validate(compiled)

        if subject is not None:
            resolved = Subject(name=subject)
        else:
            resolved = helper.get_subject(
                confluent_schema, self.config.separator if separator is None else separator
            )

        if compatibility is _DEFAULT:
            compatibility = self.config.compatibility
        level = _compatibility_level(compatibility)

        if level is not None:
            await self._ensure_compatibility(resolved.name, level)

        async def register_fn() -> int:
            response = await self.api.register(resolved.name, _request_body(confluent_schema))
            registry_id = int(response["id"])
            self.cache.set_schema(registry_id, compiled)
            log.info(
                "schema.registered",
                subject=resolved.name,
                schema_type=confluent_schema.type.value,
                registry_id=registry_id,
            )
            return registry_id

        registry_id = await self.cache.get_or_register(confluent_schema, resolved.name, register_fn)
        return RegisteredSchema(id=registry_id)

    async def _ensure_compatibility(self, subject: str, level: Compatibility) -> None:
        try:
            current = await self.api.get_config(subject)
        except SchemaNotFoundError:
            await self.api.update_config(subject, level)
            log.info("subject.compatibility_set", subject=subject, compatibility=level.value)
            return
        existing = current.get("compatibilityLevel") or current.get("compatibility")
        if existing and existing.upper() != level.value:
            raise CompatibilityError(
                f"Compatibility does not match the configuration ({level.value} != {existing.upper()})",
                subject=subject,
                requested=level.value,
                existing=existing.upper(),
            )

    # ── Encode / decode ───────────────────────────────────────────────────────

    async def encode(self, registry_id: int, payload: Any) -> bytes:
        """Encode payload with schema registry_id and frame it for the wire."""
        compiled = await self.get_schema(registry_id)
        return frame(registry_id, compiled.encode(payload))

    async def decode(
        self,
        buffer: bytes,
        *,
        reader_schema: ConfluentSchema | dict | str | None = None,
    ) -> Any:
        """
        Decode a framed message. For Avro, reader_schema projects the payload
        onto a different (compatible) schema than the one it was written with.
        """
        registry_id, payload = unframe(buffer)
        compiled = await self.get_schema(registry_id)
        if reader_schema is None:
            return compiled.decode(payload)
        if compiled.schema_type is not SchemaType.AVRO:
            raise ArgumentError(
                f"reader_schema is only supported for AVRO, schema {registry_id} is "
                f"{compiled.schema_type.value}"
            )
        return compiled.decode(payload, reader_schema=reader_schema)

    # ── Lookups ───────────────────────────────────────────────────────────────

    async def get_schema(self, registry_id: int) -> CompiledSchema:
        """Compiled schema for registry_id, fetched and compiled at most once."""
        return await self.cache.get_or_compile(
            registry_id, lambda: self._fetch_and_compile(registry_id)
        )

    async def get_latest_schema_id(self, subject: str) -> int:
        data = await self.api.get_subject_version(subject, "latest")
        return int(data["id"])

    async def get_registry_id(self, subject: str, version: int) -> int:
        data = await self.api.get_subject_version(subject, version)
        return int(data["id"])

    async def get_registry_id_by_schema(
        self, subject: str, schema: ConfluentSchema | dict[str, Any]
    ) -> int:
        """Id of an already registered schema under subject; SchemaNotFoundError otherwise."""
        confluent_schema = _as_confluent_schema(schema)
        cached = self.cache.get_registry_id(confluent_schema, subject)
        if cached is not None:
            return cached
        data = await self.api.lookup(subject, _request_body(confluent_schema))
        registry_id = int(data["id"])
        self.cache.set_registry_id(confluent_schema, subject, registry_id)
        return registry_id

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _fetch_and_compile(self, registry_id: int) -> CompiledSchema:
        data = await self.api.get_schema_by_id(registry_id)
        response = SchemaResponse.from_dict({**data, "id": registry_id})
        helper = get_helper(response.schema_type)
        compiled = await self._compile(helper, helper.to_confluent_schema(response))
        log.debug(
            "schema.compiled",
            registry_id=registry_id,
            schema_type=response.schema_type.value,
        )
        return compiled

    async def _compile(self, helper: SchemaHelper, schema: ConfluentSchema) -> CompiledSchema:
        options = self.options.get(schema.type, {})
        references = helper.get_references(schema)
        if references:
            referred = await self._referenced_schemas(references)
            options = helper.update_options_from_references(options, referred)
        return helper.compile(schema, options)

    async def _referenced_schemas(
        self,
        references: list[SchemaReference],
        seen: dict[tuple[str, int], str] | None = None,
    ) -> dict[str, str]:
        """Reference name → schema text for references and their own references."""
        seen = {} if seen is None else seen
        referred: dict[str, str] = {}
        for ref in references:
            key = (ref.subject, ref.version)
            if key not in seen:
                data = await self.api.get_subject_version(ref.subject, ref.version)
                response = SchemaResponse.from_dict(data)
                seen[key] = response.schema
                if response.references:
                    referred.update(await self._referenced_schemas(list(response.references), seen))
            # One version may be imported under several names.
            referred[ref.name] = seen[key]
        return referred


__all__ = ["SchemaRegistry"]
