"""
schema_registry_sdk.tier3_platform.api_client
──────────────────────────────────────────────
Async HTTP client for the schema registry REST API. Adds basic auth,
registry media types, retry on idempotent reads and structured error
mapping to every outbound request.

Error mapping:
  transport error, 5xx, 408, 429 → RegistryUnavailableError (GETs are retried)
  404                            → SchemaNotFoundError
  other 4xx                      → RegistryResponseError

Backed by: httpx (async HTTP) + tenacity (via tier1_runtime.retry).
"""
from __future__ import annotations

import time
from typing import Any
from urllib.parse import quote

import httpx

from schema_registry_sdk.tier0_core.config import RegistryConfig, RetryConfig
from schema_registry_sdk.tier0_core.errors import (
    RegistryResponseError,
    RegistryUnavailableError,
    SchemaNotFoundError,
)
from schema_registry_sdk.tier0_core.logging import get_logger
from schema_registry_sdk.tier0_core.types import Compatibility
from schema_registry_sdk.tier1_runtime.retry import retrying

log = get_logger(__name__)

MEDIA_TYPE = "application/vnd.schemaregistry.v1+json"


def _segment(value: str | int) -> str:
    return quote(str(value), safe="")


class RegistryApiClient:
    """
    Typed calls for each registry endpoint used by the SDK.

    Usage::

        api = RegistryApiClient(RegistryConfig(host="http://registry:8081"))
        data = await api.get_schema_by_id(42)
        await api.aclose()
    """

    def __init__(
        self,
        config: RegistryConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._retry: RetryConfig = config.retry
        auth = None
        if config.auth is not None:
            auth = httpx.BasicAuth(
                config.auth.username, config.auth.password.get_secret_value()
            )
        self._http = httpx.AsyncClient(
            base_url=config.host,
            auth=auth,
            timeout=config.timeout,
            transport=transport,
            headers={"Accept": MEDIA_TYPE, "Content-Type": MEDIA_TYPE},
        )

    # ── Endpoints ─────────────────────────────────────────────────────────────

    async def register(self, subject: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST /subjects/{subject}/versions → {"id": ...}. Never retried."""
        return await self._request("POST", f"/subjects/{_segment(subject)}/versions", json=body)

    async def lookup(self, subject: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST /subjects/{subject} → the matching version, or SchemaNotFoundError."""
        return await self._request("POST", f"/subjects/{_segment(subject)}", json=body)

    async def get_schema_by_id(self, registry_id: int) -> dict[str, Any]:
        return await self._get(f"/schemas/ids/{_segment(registry_id)}")

    async def get_subject_version(self, subject: str, version: int | str) -> dict[str, Any]:
        return await self._get(f"/subjects/{_segment(subject)}/versions/{_segment(version)}")

    async def get_config(self, subject: str) -> dict[str, Any]:
        """GET /config/{subject}; SchemaNotFoundError when the subject has no config."""
        return await self._get(f"/config/{_segment(subject)}")

    async def update_config(self, subject: str, compatibility: Compatibility) -> dict[str, Any]:
        return await self._request(
            "PUT", f"/config/{_segment(subject)}", json={"compatibility": compatibility.value}
        )

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _get(self, path: str) -> dict[str, Any]:
        async for attempt in retrying(self._retry):
            with attempt:
                return await self._request("GET", path)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        started = time.monotonic()
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            log.warning("registry.request_failed", method=method, path=path, error=str(exc))
            raise RegistryUnavailableError(
                f"{method} {path} failed: {exc}", method=method, path=path
            ) from exc

        log.debug(
            "registry.request",
            method=method,
            path=path,
            status=response.status_code,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        if response.is_success:
            return response.json()
        self._raise_for_status(method, path, response)
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _raise_for_status(method: str, path: str, response: httpx.Response) -> None:
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.text or response.reason_phrase
        error_code = body.get("error_code")
        detail = f"{method} {path} returned {status}: {message}"

        if status >= 500 or status in (408, 429):
            raise RegistryUnavailableError(detail, method=method, path=path, status_code=status)
        if status == 404:
            raise SchemaNotFoundError(detail, status_code=status, error_code=error_code, path=path)
        raise RegistryResponseError(detail, status_code=status, error_code=error_code, path=path)

    async def aclose(self) -> None:
        await self._http.aclose()


__all__ = ["RegistryApiClient", "MEDIA_TYPE"]
