"""
schema_registry_sdk.tier0_core.config
──────────────────────────────────────
Typed client configuration with env layering. Reads from .env → environment
variables. All fields are typed via Pydantic; nested groups use a double
underscore, e.g. SCHEMA_REGISTRY_RETRY__MAX_RETRIES=5.

Stack: pydantic-settings
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from schema_registry_sdk.tier0_core.types import Compatibility


class BasicAuth(BaseModel):
    username: str
    password: SecretStr


class RetryConfig(BaseModel):
    """Backoff for idempotent registry reads. Delays are in seconds."""
    initial_delay: float = Field(default=0.1, gt=0)
    max_delay: float = Field(default=5.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1)
    jitter_factor: float = Field(default=0.2, ge=0, le=1)
    max_retries: int = Field(default=3, ge=0)


class RegistryConfig(BaseSettings):
    """
    Registry client configuration. All env vars are prefixed with
    SCHEMA_REGISTRY_.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEMA_REGISTRY_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Registry ──────────────────────────────────────────────────────────────
    host: str = "http://localhost:8081"
    auth: BasicAuth | None = None
    timeout: float = Field(default=30.0, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    # ── Registration defaults ─────────────────────────────────────────────────
    separator: str = "."
    compatibility: Compatibility | None = Compatibility.BACKWARD

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"host must be an http(s) URL, got {v!r}")
        return v.rstrip("/")


@lru_cache(maxsize=1)
def get_config() -> RegistryConfig:
    """
    Return the singleton client config. Cached after first call.
    Call _reset_config() in tests to pick up new env vars.
    """
    return RegistryConfig()


def _reset_config() -> None:
    """For tests: clear the config cache."""
    get_config.cache_clear()
