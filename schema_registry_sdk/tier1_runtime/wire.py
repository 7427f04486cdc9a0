"""
schema_registry_sdk.tier1_runtime.wire
───────────────────────────────────────
Wire envelope carried by every encoded message:

    byte 0      magic byte, always 0
    bytes 1-4   registry schema id, big-endian unsigned 32-bit
    bytes 5-    format-specific payload

The schema family is not part of the envelope; it is implied by the id.
"""
from __future__ import annotations

import struct

from schema_registry_sdk.tier0_core.errors import WireFormatError

MAGIC_BYTE = 0
HEADER_SIZE = 5
MAX_SCHEMA_ID = 2**32 - 1

_HEADER = struct.Struct(">BI")


def frame(registry_id: int, payload: bytes) -> bytes:
    """Prefix payload with the magic byte and schema id."""
    if not 0 <= registry_id <= MAX_SCHEMA_ID:
        raise WireFormatError(
            f"Schema id {registry_id} does not fit in 4 unsigned bytes",
            registry_id=registry_id,
        )
    return _HEADER.pack(MAGIC_BYTE, registry_id) + bytes(payload)


def unframe(buffer: bytes) -> tuple[int, bytes]:
    """
    Split an envelope into (schema id, payload).
    Raises WireFormatError on a short buffer or wrong magic byte.
    """
    if len(buffer) < HEADER_SIZE:
        raise WireFormatError(
            f"Message too short: {len(buffer)} bytes, need at least {HEADER_SIZE}",
            length=len(buffer),
        )
    magic, registry_id = _HEADER.unpack_from(buffer)
    if magic != MAGIC_BYTE:
        raise WireFormatError(
            f"Message encoded with magic byte {magic}, expected {MAGIC_BYTE}",
            magic_byte=magic,
        )
    return registry_id, bytes(buffer[HEADER_SIZE:])


__all__ = ["MAGIC_BYTE", "HEADER_SIZE", "frame", "unframe"]
