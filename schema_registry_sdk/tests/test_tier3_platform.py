"""Tests for tier3_platform modules (registry HTTP API)."""
from __future__ import annotations

import httpx
import pytest

from schema_registry_sdk.tier0_core.config import BasicAuth, RegistryConfig
from schema_registry_sdk.tier0_core.errors import (
    RegistryResponseError,
    RegistryUnavailableError,
    SchemaNotFoundError,
)
from schema_registry_sdk.tier0_core.types import Compatibility
from schema_registry_sdk.tier3_platform.api_client import MEDIA_TYPE, RegistryApiClient


@pytest.fixture
def api(registry_config, fake_registry):
    return RegistryApiClient(registry_config, transport=fake_registry)


class TestRegistryApiClient:
    @pytest.mark.asyncio
    async def test_register_and_fetch(self, api, fake_registry):
        data = await api.register("orders-value", {"schema": '"string"'})
        fetched = await api.get_schema_by_id(data["id"])
        assert fetched == {"schema": '"string"'}
        assert fake_registry.calls == [
            ("POST", "/subjects/orders-value/versions"),
            ("GET", f"/schemas/ids/{data['id']}"),
        ]

    @pytest.mark.asyncio
    async def test_get_is_retried_on_server_errors(self, api, fake_registry):
        registry_id = fake_registry.add_schema("orders-value", '"string"')
        fake_registry.fail_with = [503, 500]
        data = await api.get_schema_by_id(registry_id)
        assert data["schema"] == '"string"'
        assert fake_registry.count("GET", "/schemas/ids") == 3

    @pytest.mark.asyncio
    async def test_get_is_retried_on_timeout_and_throttling(self, api, fake_registry):
        registry_id = fake_registry.add_schema("orders-value", '"string"')
        fake_registry.fail_with = [408, 429]
        data = await api.get_schema_by_id(registry_id)
        assert data["schema"] == '"string"'
        assert fake_registry.count("GET", "/schemas/ids") == 3

    @pytest.mark.asyncio
    async def test_get_is_retried_on_transport_errors(self, api, fake_registry):
        registry_id = fake_registry.add_schema("orders-value", '"string"')
        fake_registry.fail_with = [httpx.ConnectError("connection refused")]
        data = await api.get_schema_by_id(registry_id)
        assert data["schema"] == '"string"'

    @pytest.mark.asyncio
    async def test_get_gives_up_after_retries(self, api, fake_registry):
        fake_registry.fail_with = [503] * 10
        with pytest.raises(RegistryUnavailableError):
            await api.get_schema_by_id(1)
        assert fake_registry.count("GET") == 4

    @pytest.mark.asyncio
    async def test_post_is_never_retried(self, api, fake_registry):
        fake_registry.fail_with = [503]
        with pytest.raises(RegistryUnavailableError):
            await api.register("orders-value", {"schema": '"string"'})
        assert fake_registry.count("POST") == 1
        assert fake_registry.subjects == {}

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, api, fake_registry):
        with pytest.raises(SchemaNotFoundError) as exc_info:
            await api.get_schema_by_id(404)
        assert exc_info.value.error_code == 40403
        assert fake_registry.count("GET") == 1

    @pytest.mark.asyncio
    async def test_client_error_maps_to_response_error(self, api, fake_registry):
        fake_registry.fail_with = [422]
        with pytest.raises(RegistryResponseError) as exc_info:
            await api.register("orders-value", {"schema": "not a schema"})
        assert exc_info.value.status_code == 422
        assert not isinstance(exc_info.value, SchemaNotFoundError)

    @pytest.mark.asyncio
    async def test_config_roundtrip(self, api, fake_registry):
        with pytest.raises(SchemaNotFoundError):
            await api.get_config("orders-value")
        await api.update_config("orders-value", Compatibility.FULL)
        assert await api.get_config("orders-value") == {"compatibilityLevel": "FULL"}

    @pytest.mark.asyncio
    async def test_sends_media_type_and_basic_auth(self):
        seen: list[httpx.Request] = []

        class Recorder(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request):
                seen.append(request)
                return httpx.Response(200, json={"compatibilityLevel": "NONE"})

        config = RegistryConfig(
            host="http://registry.test",
            auth=BasicAuth(username="svc", password="hunter2"),
        )
        api = RegistryApiClient(config, transport=Recorder())
        await api.get_config("orders-value")
        await api.aclose()

        assert seen[0].headers["accept"] == MEDIA_TYPE
        assert seen[0].headers["authorization"].startswith("Basic ")
