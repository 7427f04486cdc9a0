"""
schema_registry_sdk test configuration.

All tests run against an in-memory fake registry served through an httpx
transport, so no external services are required.
"""
from __future__ import annotations

import asyncio
import json
import os
from typing import Any

import httpx
import pytest

os.environ.setdefault("SCHEMA_REGISTRY_LOG_LEVEL", "WARNING")
os.environ.setdefault("SCHEMA_REGISTRY_LOG_FORMAT", "console")


def _error(status: int, error_code: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"error_code": error_code, "message": message})


class FakeRegistry(httpx.AsyncBaseTransport):
    """
    Minimal schema registry. Records every request in `calls`; entries in
    `fail_with` (status codes or exceptions) are consumed one per request
    before routing.
    """

    def __init__(self) -> None:
        self.schemas: dict[int, dict[str, Any]] = {}
        self.subjects: dict[str, list[int]] = {}
        self.configs: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_with: list[int | Exception] = []
        self._next_id = 1

    def count(self, method: str, path_prefix: str = "") -> int:
        return sum(1 for m, p in self.calls if m == method and p.startswith(path_prefix))

    def add_schema(
        self,
        subject: str,
        schema: str,
        schema_type: str = "AVRO",
        references: list[dict] | None = None,
    ) -> int:
        entry = {"schema": schema, "schemaType": schema_type, "references": references or []}
        for registry_id, existing in self.schemas.items():
            if existing == entry:
                break
        else:
            registry_id = self._next_id
            self._next_id += 1
            self.schemas[registry_id] = entry
        versions = self.subjects.setdefault(subject, [])
        if registry_id not in versions:
            versions.append(registry_id)
        return registry_id

    def _version_body(self, subject: str, version: int, registry_id: int) -> dict[str, Any]:
        entry = self.schemas[registry_id]
        body = {"subject": subject, "version": version, "id": registry_id, "schema": entry["schema"]}
        if entry["schemaType"] != "AVRO":
            body["schemaType"] = entry["schemaType"]
        if entry["references"]:
            body["references"] = entry["references"]
        return body

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0)
        method, path = request.method, request.url.path
        self.calls.append((method, path))

        if self.fail_with:
            failure = self.fail_with.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return _error(failure, failure * 100 + 1, "injected failure")

        parts = path.strip("/").split("/")
        body = json.loads(request.content) if request.content else {}

        if parts[0] == "subjects" and method == "POST" and len(parts) == 3:
            registry_id = self.add_schema(
                parts[1], body["schema"], body.get("schemaType", "AVRO"), body.get("references")
            )
            return httpx.Response(200, json={"id": registry_id})

        if parts[0] == "subjects" and method == "POST" and len(parts) == 2:
            wanted = {
                "schema": body["schema"],
                "schemaType": body.get("schemaType", "AVRO"),
                "references": body.get("references") or [],
            }
            for version, registry_id in enumerate(self.subjects.get(parts[1], []), start=1):
                if self.schemas[registry_id] == wanted:
                    return httpx.Response(200, json=self._version_body(parts[1], version, registry_id))
            return _error(404, 40403, "Schema not found")

        if parts[0] == "subjects" and method == "GET" and len(parts) == 4:
            versions = self.subjects.get(parts[1])
            if not versions:
                return _error(404, 40401, f"Subject '{parts[1]}' not found.")
            version = len(versions) if parts[3] == "latest" else int(parts[3])
            if not 1 <= version <= len(versions):
                return _error(404, 40402, "Version not found.")
            return httpx.Response(200, json=self._version_body(parts[1], version, versions[version - 1]))

        if parts[:2] == ["schemas", "ids"] and method == "GET":
            entry = self.schemas.get(int(parts[2]))
            if entry is None:
                return _error(404, 40403, "Schema not found")
            data = {"schema": entry["schema"]}
            if entry["schemaType"] != "AVRO":
                data["schemaType"] = entry["schemaType"]
            if entry["references"]:
                data["references"] = entry["references"]
            return httpx.Response(200, json=data)

        if parts[0] == "config" and method == "GET":
            level = self.configs.get(parts[1])
            if level is None:
                return _error(404, 40408, f"Subject '{parts[1]}' does not have subject-level compatibility configured")
            return httpx.Response(200, json={"compatibilityLevel": level})

        if parts[0] == "config" and method == "PUT":
            self.configs[parts[1]] = body["compatibility"]
            return httpx.Response(200, json={"compatibility": body["compatibility"]})

        return _error(404, 404, "Not found")


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_config_cache():
    from schema_registry_sdk.tier0_core.config import _reset_config

    _reset_config()
    yield
    _reset_config()


@pytest.fixture
def fake_registry():
    return FakeRegistry()


@pytest.fixture
def registry_config():
    from schema_registry_sdk.tier0_core.config import RegistryConfig, RetryConfig

    return RegistryConfig(
        host="http://registry.test",
        retry=RetryConfig(initial_delay=0.001, max_delay=0.002, jitter_factor=0.0),
    )


@pytest.fixture
def registry(registry_config, fake_registry):
    from schema_registry_sdk.tier4_advanced.registry import SchemaRegistry

    return SchemaRegistry(registry_config, transport=fake_registry)


@pytest.fixture
def avro_schema():
    from schema_registry_sdk.tier0_core.types import ConfluentSchema, SchemaType

    return ConfluentSchema(
        type=SchemaType.AVRO,
        schema=json.dumps({
            "type": "record",
            "name": "RandomTest",
            "namespace": "examples",
            "fields": [{"type": "string", "name": "fullName"}],
        }),
    )
