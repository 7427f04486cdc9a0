"""
schema_registry_sdk.tier0_core.types
─────────────────────────────────────
Value types shared by every layer: schema families, schemas as submitted to
and returned by the registry, subjects and references.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SchemaType(str, Enum):
    """Schema families understood by the registry. Values are registry wire values."""
    AVRO = "AVRO"
    PROTOBUF = "PROTOBUF"
    JSON = "JSON"


class Compatibility(str, Enum):
    NONE = "NONE"
    BACKWARD = "BACKWARD"
    BACKWARD_TRANSITIVE = "BACKWARD_TRANSITIVE"
    FORWARD = "FORWARD"
    FORWARD_TRANSITIVE = "FORWARD_TRANSITIVE"
    FULL = "FULL"
    FULL_TRANSITIVE = "FULL_TRANSITIVE"


@dataclass(frozen=True)
class SchemaReference:
    """Named pointer to a schema version registered under another subject."""
    name: str
    subject: str
    version: int

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "subject": self.subject, "version": self.version}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaReference:
        return cls(name=data["name"], subject=data["subject"], version=int(data["version"]))


@dataclass(frozen=True)
class ConfluentSchema:
    """Raw schema source as registered: family tag, text and declared references."""
    type: SchemaType
    schema: str
    references: tuple[SchemaReference, ...] | None = None


@dataclass(frozen=True)
class Subject:
    name: str


@dataclass(frozen=True)
class RegisteredSchema:
    id: int


@dataclass(frozen=True)
class SchemaResponse:
    """Schema as returned by the registry for an id or a subject version."""
    schema: str
    schema_type: SchemaType = SchemaType.AVRO
    references: tuple[SchemaReference, ...] = field(default_factory=tuple)
    id: int | None = None
    subject: str | None = None
    version: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaResponse:
        # The registry omits schemaType for AVRO schemas.
        return cls(
            schema=data["schema"],
            schema_type=SchemaType(data.get("schemaType") or SchemaType.AVRO.value),
            references=tuple(SchemaReference.from_dict(r) for r in data.get("references") or ()),
            id=data.get("id"),
            subject=data.get("subject"),
            version=data.get("version"),
        )


__all__ = [
    "SchemaType",
    "Compatibility",
    "SchemaReference",
    "ConfluentSchema",
    "Subject",
    "RegisteredSchema",
    "SchemaResponse",
]
