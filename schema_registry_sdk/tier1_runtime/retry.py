"""
schema_registry_sdk.tier1_runtime.retry
────────────────────────────────────────
Retry/backoff policy for idempotent registry reads.
Backed by Tenacity. Only RegistryUnavailableError (transport failures, 5xx,
429) is retried; every other error surfaces on the first attempt.

The n-th wait is initial_delay * multiplier**(n-1), capped at max_delay, then
spread uniformly by ±jitter_factor.

Usage:
    @retry_policy(RetryConfig(max_retries=5))
    async def fetch_schema(registry_id):
        ...
"""
from __future__ import annotations

import functools
import random
from collections.abc import Callable
from typing import Any, Type

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from schema_registry_sdk.tier0_core.config import RetryConfig
from schema_registry_sdk.tier0_core.errors import RegistryUnavailableError
from schema_registry_sdk.tier0_core.logging import get_logger

log = get_logger(__name__)


class wait_exponential_jitter_factor(wait_base):
    """Exponential wait randomized by a relative jitter factor."""

    def __init__(
        self,
        initial: float = 0.1,
        maximum: float = 5.0,
        multiplier: float = 2.0,
        jitter_factor: float = 0.2,
    ) -> None:
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier
        self.jitter_factor = jitter_factor

    def __call__(self, retry_state: RetryCallState) -> float:
        exp = max(retry_state.attempt_number - 1, 0)
        base = min(self.maximum, self.initial * self.multiplier**exp)
        spread = base * self.jitter_factor
        return max(0.0, random.uniform(base - spread, base + spread))


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    log.warning(
        "registry.retry",
        attempt=retry_state.attempt_number,
        wait=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
        error=str(exc),
    )


def retrying(
    config: RetryConfig | None = None,
    on: tuple[Type[BaseException], ...] = (RegistryUnavailableError,),
) -> AsyncRetrying:
    """Build a Tenacity controller for one retried call."""
    cfg = config or RetryConfig()
    return AsyncRetrying(
        stop=stop_after_attempt(cfg.max_retries + 1),
        wait=wait_exponential_jitter_factor(
            initial=cfg.initial_delay,
            maximum=cfg.max_delay,
            multiplier=cfg.multiplier,
            jitter_factor=cfg.jitter_factor,
        ),
        retry=retry_if_exception_type(on),
        before_sleep=_log_retry,
        reraise=True,
    )


def retry_policy(
    config: RetryConfig | None = None,
    on: tuple[Type[BaseException], ...] = (RegistryUnavailableError,),
) -> Callable:
    """
    Decorator applying exponential backoff with jitter to a coroutine function.

    Args:
        config: Delays and retry count; defaults to RetryConfig().
        on:     Exception types that trigger another attempt.
    """
    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in retrying(config, on):
                with attempt:
                    return await fn(*args, **kwargs)

        return wrapper
    return decorator


__all__ = ["retry_policy", "retrying", "wait_exponential_jitter_factor"]
