"""
schema_registry_sdk.tier2_reliability.cache
────────────────────────────────────────────
Per-client in-process cache for registry ids and compiled schemas.

Stampede protection: concurrent misses on the same key attach to one
in-flight task instead of starting their own. Failures reach every waiter
and are never cached, so the next call starts over. Entries are never
evicted: a registry id always denotes the same schema.
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, TypeVar

from schema_registry_sdk.tier0_core.logging import get_logger
from schema_registry_sdk.tier0_core.types import ConfluentSchema

T = TypeVar("T")

log = get_logger(__name__)

SchemaKey = tuple[str, str, str]  # (subject, schema text, schema type)


def _consume_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; mark the result as retrieved.
    if not task.cancelled():
        task.exception()


class SchemaRegistryCache:
    """
    Memoizes (subject, schema) → registry id and registry id → compiled schema.

    Usage::

        cache = SchemaRegistryCache()
        registry_id = await cache.get_or_register(schema, subject, do_register)
        compiled = await cache.get_or_compile(registry_id, fetch_and_compile)
    """

    def __init__(self) -> None:
        self._ids: dict[SchemaKey, int] = {}
        self._schemas: dict[int, Any] = {}
        self._inflight: dict[Hashable, asyncio.Task] = {}

    @staticmethod
    def schema_key(schema: ConfluentSchema, subject: str) -> SchemaKey:
        return (subject, schema.schema, schema.type.value)

    # ── Direct access ─────────────────────────────────────────────────────────

    def get_registry_id(self, schema: ConfluentSchema, subject: str) -> int | None:
        return self._ids.get(self.schema_key(schema, subject))

    def set_registry_id(self, schema: ConfluentSchema, subject: str, registry_id: int) -> None:
        self._ids[self.schema_key(schema, subject)] = registry_id

    def get_schema(self, registry_id: int) -> Any | None:
        return self._schemas.get(registry_id)

    def set_schema(self, registry_id: int, compiled: Any) -> None:
        self._schemas[registry_id] = compiled

    # ── Single-flight ─────────────────────────────────────────────────────────

    async def get_or_register(
        self,
        schema: ConfluentSchema,
        subject: str,
        register_fn: Callable[[], Awaitable[int]],
    ) -> int:
        """Return the cached id or run register_fn once for all concurrent callers."""
        key = self.schema_key(schema, subject)
        return await self._single_flight(
            ("register", key), self._ids, key, register_fn
        )

    async def get_or_compile(
        self,
        registry_id: int,
        fetch_and_compile_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """Return the cached compiled schema or run fetch_and_compile_fn once."""
        return await self._single_flight(
            ("compile", registry_id), self._schemas, registry_id, fetch_and_compile_fn
        )

    async def _single_flight(
        self,
        flight_key: Hashable,
        store: dict,
        key: Hashable,
        fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        if key in store:
            return store[key]

        task = self._inflight.get(flight_key)
        if task is None:
            task = asyncio.ensure_future(self._run(flight_key, store, key, fn))
            task.add_done_callback(_consume_exception)
            self._inflight[flight_key] = task
        else:
            log.debug("cache.join_inflight", key=str(flight_key))

        # shield: a cancelled caller must not cancel the shared task.
        return await asyncio.shield(task)

    async def _run(
        self,
        flight_key: Hashable,
        store: dict,
        key: Hashable,
        fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            value = await fn()
            store[key] = value
            return value
        finally:
            self._inflight.pop(flight_key, None)

    def clear(self) -> None:
        """Drop every cached entry. In-flight operations are left to finish."""
        self._ids.clear()
        self._schemas.clear()


__all__ = ["SchemaRegistryCache"]
