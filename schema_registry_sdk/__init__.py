"""
schema_registry_sdk
───────────────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from schema_registry_sdk.tier0_core.logging import get_logger
from schema_registry_sdk.tier0_core.errors import (
    SchemaRegistryError,
    SchemaCompilationError,
    InvalidSchemaError,
    MissingMetadataError,
    ArgumentError,
    CompatibilityError,
    WireFormatError,
    EncodingError,
    DecodingError,
    RegistryUnavailableError,
    RegistryResponseError,
    SchemaNotFoundError,
)
from schema_registry_sdk.tier0_core.config import (
    get_config,
    RegistryConfig,
    RetryConfig,
    BasicAuth,
)
from schema_registry_sdk.tier0_core.types import (
    SchemaType,
    Compatibility,
    ConfluentSchema,
    SchemaReference,
    RegisteredSchema,
    SchemaResponse,
    Subject,
)

from schema_registry_sdk.tier1_runtime.wire import frame, unframe
from schema_registry_sdk.tier1_runtime.retry import retry_policy

from schema_registry_sdk.tier2_reliability.cache import SchemaRegistryCache

from schema_registry_sdk.tier4_advanced.helpers import get_helper
from schema_registry_sdk.tier4_advanced.registry import SchemaRegistry

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger",
    # errors
    "SchemaRegistryError", "SchemaCompilationError", "InvalidSchemaError",
    "MissingMetadataError", "ArgumentError", "CompatibilityError",
    "WireFormatError", "EncodingError", "DecodingError",
    "RegistryUnavailableError", "RegistryResponseError", "SchemaNotFoundError",
    # config
    "get_config", "RegistryConfig", "RetryConfig", "BasicAuth",
    # types
    "SchemaType", "Compatibility", "ConfluentSchema", "SchemaReference",
    "RegisteredSchema", "SchemaResponse", "Subject",
    # wire
    "frame", "unframe",
    # retry
    "retry_policy",
    # cache
    "SchemaRegistryCache",
    # helpers
    "get_helper",
    # client
    "SchemaRegistry",
]
