"""
schema_registry_sdk.tier4_advanced.protobuf
────────────────────────────────────────────
Protocol-binary family. `.proto` text is parsed with proto-schema-parser,
converted to a FileDescriptorProto with fully-qualified type names and loaded
into a private DescriptorPool; message classes come from the protobuf runtime.

Imports resolve against, in order: files already added to the pool,
referenced schemas passed in options["imports"] (reference name → .proto
text), and the well-known types bundled with protobuf.

Options:
  message_name  message to encode/decode (simple or fully-qualified name);
                defaults to the first top-level message of the file
  file_name     name of the root file inside the pool (default "schema.proto")
  imports       referenced files, filled in by update_options_from_references

Payloads are dicts (or instances of the message class); decode returns a
dict keyed by the original .proto field names.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any

from google.protobuf import (
    any_pb2,
    descriptor_pb2,
    descriptor_pool,
    duration_pb2,
    empty_pb2,
    field_mask_pb2,
    json_format,
    message_factory,
    struct_pb2,
    timestamp_pb2,
    wrappers_pb2,
)
from google.protobuf.message import DecodeError, Message
from proto_schema_parser import ast
from proto_schema_parser.parser import Parser

from schema_registry_sdk.tier0_core.errors import (
    DecodingError,
    EncodingError,
    InvalidSchemaError,
    MissingMetadataError,
    SchemaCompilationError,
)
from schema_registry_sdk.tier0_core.logging import get_logger
from schema_registry_sdk.tier0_core.types import (
    ConfluentSchema,
    SchemaReference,
    SchemaResponse,
    SchemaType,
    Subject,
)

log = get_logger(__name__)

FDP = descriptor_pb2.FieldDescriptorProto

_SCALARS: dict[str, int] = {
    "double": FDP.TYPE_DOUBLE,
    "float": FDP.TYPE_FLOAT,
    "int64": FDP.TYPE_INT64,
    "uint64": FDP.TYPE_UINT64,
    "int32": FDP.TYPE_INT32,
    "fixed64": FDP.TYPE_FIXED64,
    "fixed32": FDP.TYPE_FIXED32,
    "bool": FDP.TYPE_BOOL,
    "string": FDP.TYPE_STRING,
    "bytes": FDP.TYPE_BYTES,
    "uint32": FDP.TYPE_UINT32,
    "sfixed32": FDP.TYPE_SFIXED32,
    "sfixed64": FDP.TYPE_SFIXED64,
    "sint32": FDP.TYPE_SINT32,
    "sint64": FDP.TYPE_SINT64,
}

_LABELS = {
    ast.FieldCardinality.REQUIRED: FDP.LABEL_REQUIRED,
    ast.FieldCardinality.OPTIONAL: FDP.LABEL_OPTIONAL,
    ast.FieldCardinality.REPEATED: FDP.LABEL_REPEATED,
}

_WELL_KNOWN = {
    module.DESCRIPTOR.name: module.DESCRIPTOR
    for module in (
        any_pb2, duration_pb2, empty_pb2, field_mask_pb2,
        struct_pb2, timestamp_pb2, wrappers_pb2,
    )
}

DEFAULT_FILE_NAME = "schema.proto"


def _map_entry_name(field_name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in field_name.split("_")) + "Entry"


def _qualify(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


# ── .proto text → FileDescriptorProto ─────────────────────────────────────────

@dataclass
class _Symbols:
    """Fully-qualified message and enum names visible to the files being built."""
    kinds: dict[str, int] = field(default_factory=dict)

    def add_descriptor_file(self, file_desc: Any) -> None:
        def walk(msg: Any) -> None:
            self.kinds[msg.full_name] = FDP.TYPE_MESSAGE
            for enum in msg.enum_types:
                self.kinds[enum.full_name] = FDP.TYPE_ENUM
            for nested in msg.nested_types:
                walk(nested)

        for msg in file_desc.message_types_by_name.values():
            walk(msg)
        for enum in file_desc.enum_types_by_name.values():
            self.kinds[enum.full_name] = FDP.TYPE_ENUM

    def add_ast_file(self, package: str, elements: list[Any]) -> None:
        def walk(scope: str, items: list[Any]) -> None:
            for item in items:
                if isinstance(item, ast.Message):
                    full = _qualify(scope, item.name)
                    self.kinds[full] = FDP.TYPE_MESSAGE
                    for child in item.elements:
                        if isinstance(child, ast.MapField):
                            self.kinds[_qualify(full, _map_entry_name(child.name))] = FDP.TYPE_MESSAGE
                    walk(full, item.elements)
                elif isinstance(item, ast.Enum):
                    self.kinds[_qualify(scope, item.name)] = FDP.TYPE_ENUM

        walk(package, elements)

    def resolve(self, scope: str, name: str) -> tuple[int, str]:
        if name.startswith("."):
            candidates = [name[1:]]
        else:
            candidates = []
            parts = scope.split(".") if scope else []
            for i in range(len(parts), -1, -1):
                candidates.append(_qualify(".".join(parts[:i]), name))
        for candidate in candidates:
            kind = self.kinds.get(candidate)
            if kind is not None:
                return kind, "." + candidate
        raise SchemaCompilationError(f"Unresolved type {name!r} in scope {scope or '<root>'}")


class _FileBuilder:
    def __init__(self, file_name: str, tree: Any, symbols: _Symbols) -> None:
        self.file_name = file_name
        self.tree = tree
        self.symbols = symbols
        self.package = next(
            (e.name for e in tree.file_elements if isinstance(e, ast.Package)), ""
        )
        self.syntax = tree.syntax or "proto2"
        self.imports = [e.name for e in tree.file_elements if isinstance(e, ast.Import)]

    def build(self) -> descriptor_pb2.FileDescriptorProto:
        proto = descriptor_pb2.FileDescriptorProto(name=self.file_name, syntax=self.syntax)
        if self.package:
            proto.package = self.package
        proto.dependency.extend(self.imports)
        for element in self.tree.file_elements:
            if isinstance(element, ast.Message):
                proto.message_type.append(self._message(self.package, element))
            elif isinstance(element, ast.Enum):
                proto.enum_type.append(self._enum(element))
        return proto

    def _message(self, scope: str, node: Any) -> descriptor_pb2.DescriptorProto:
        full = _qualify(scope, node.name)
        msg = descriptor_pb2.DescriptorProto(name=node.name)
        synthetic: list[int] = []

        for element in node.elements:
            if isinstance(element, ast.Field):
                f = self._field(full, element)
                if self.syntax == "proto3" and element.cardinality == ast.FieldCardinality.OPTIONAL:
                    f.proto3_optional = True
                    synthetic.append(len(msg.field))
                msg.field.append(f)
            elif isinstance(element, ast.MapField):
                msg.nested_type.append(self._map_entry(full, element))
                msg.field.append(self._map_field(full, element))
            elif isinstance(element, ast.OneOf):
                index = len(msg.oneof_decl)
                msg.oneof_decl.add(name=element.name)
                for member in element.elements:
                    if isinstance(member, ast.Field):
                        f = self._field(full, member)
                        f.oneof_index = index
                        msg.field.append(f)
            elif isinstance(element, ast.Message):
                msg.nested_type.append(self._message(full, element))
            elif isinstance(element, ast.Enum):
                msg.enum_type.append(self._enum(element))

        # Synthetic oneofs for proto3 `optional` go after the declared ones.
        for position in synthetic:
            f = msg.field[position]
            f.oneof_index = len(msg.oneof_decl)
            msg.oneof_decl.add(name=f"_{f.name}")
        return msg

    def _field(self, scope: str, node: Any) -> FDP:
        f = FDP(name=node.name, number=node.number)
        f.label = _LABELS.get(node.cardinality, FDP.LABEL_OPTIONAL)
        self._set_type(f, scope, node.type)
        for option in getattr(node, "options", None) or ():
            if option.name == "default":
                value = option.value
                f.default_value = str(value).lower() if isinstance(value, bool) else str(value)
        return f

    def _set_type(self, f: FDP, scope: str, type_name: str) -> None:
        scalar = _SCALARS.get(type_name)
        if scalar is not None:
            f.type = scalar
            return
        kind, qualified = self.symbols.resolve(scope, type_name)
        f.type = kind
        f.type_name = qualified

    def _map_entry(self, scope: str, node: Any) -> descriptor_pb2.DescriptorProto:
        entry = descriptor_pb2.DescriptorProto(name=_map_entry_name(node.name))
        entry.options.map_entry = True
        key = FDP(name="key", number=1, label=FDP.LABEL_OPTIONAL)
        self._set_type(key, scope, node.key_type)
        value = FDP(name="value", number=2, label=FDP.LABEL_OPTIONAL)
        self._set_type(value, scope, node.value_type)
        entry.field.extend([key, value])
        return entry

    def _map_field(self, scope: str, node: Any) -> FDP:
        return FDP(
            name=node.name,
            number=node.number,
            label=FDP.LABEL_REPEATED,
            type=FDP.TYPE_MESSAGE,
            type_name="." + _qualify(scope, _map_entry_name(node.name)),
        )

    @staticmethod
    def _enum(node: Any) -> descriptor_pb2.EnumDescriptorProto:
        enum = descriptor_pb2.EnumDescriptorProto(name=node.name)
        for element in node.elements:
            if isinstance(element, ast.EnumValue):
                enum.value.add(name=element.name, number=element.number)
            elif isinstance(element, ast.Option) and element.name == "allow_alias":
                enum.options.allow_alias = bool(element.value)
        return enum


def _parse(text: str, file_name: str) -> Any:
    try:
        return Parser().parse(text)
    except Exception as exc:
        raise SchemaCompilationError(f"Invalid .proto file {file_name}: {exc}") from exc


class _PoolLoader:
    """Adds a root file and its transitive imports to a fresh DescriptorPool."""

    def __init__(self, imports: dict[str, str]) -> None:
        self.pool = descriptor_pool.DescriptorPool()
        self.imports = imports
        self.symbols = _Symbols()
        self._loaded: set[str] = set()
        self._loading: set[str] = set()

    def load(self, file_name: str, text: str) -> Any:
        if file_name in self._loaded:
            return self.pool.FindFileByName(file_name)
        if file_name in self._loading:
            raise SchemaCompilationError(f"Import cycle through {file_name}")
        self._loading.add(file_name)

        tree = _parse(text, file_name)
        builder = _FileBuilder(file_name, tree, self.symbols)
        for dependency in builder.imports:
            self._load_dependency(dependency)

        self.symbols.add_ast_file(builder.package, tree.file_elements)
        file_proto = builder.build()
        try:
            self.pool.AddSerializedFile(file_proto.SerializeToString())
        except Exception as exc:
            raise SchemaCompilationError(f"Cannot build {file_name}: {exc}") from exc

        self._loading.discard(file_name)
        self._loaded.add(file_name)
        return self.pool.FindFileByName(file_name)

    def _load_dependency(self, name: str) -> None:
        if name in self._loaded:
            return
        if name in self.imports:
            self.load(name, self.imports[name])
            return
        well_known = _WELL_KNOWN.get(name)
        if well_known is None:
            raise SchemaCompilationError(f"Unresolved import {name!r}; pass it as a schema reference")
        file_proto = descriptor_pb2.FileDescriptorProto()
        well_known.CopyToProto(file_proto)
        self.pool.AddSerializedFile(file_proto.SerializeToString())
        self.symbols.add_descriptor_file(well_known)
        self._loaded.add(name)


# ── Message → dict ────────────────────────────────────────────────────────────

def _scalar_to_python(fd: Any, value: Any) -> Any:
    if fd.type in (FDP.TYPE_MESSAGE, FDP.TYPE_GROUP):
        if fd.message_type.file.name in _WELL_KNOWN:
            return json_format.MessageToDict(value)
        return _message_to_dict(value)
    if fd.type == FDP.TYPE_ENUM:
        enum_value = fd.enum_type.values_by_number.get(value)
        return enum_value.name if enum_value is not None else value
    if fd.type == FDP.TYPE_BYTES:
        return base64.b64encode(value).decode("ascii")
    if fd.type == FDP.TYPE_FLOAT:
        # float32 widened to a Python float; trim to single precision digits.
        return float(f"{value:.7g}")
    return value


def _message_to_dict(message: Message) -> dict[str, Any]:
    """
    Dict keyed by .proto field names, in the shape json_format.ParseDict
    accepts. 64-bit integers stay ints and fields without presence are
    always emitted, so every field of an encoded dict comes back unchanged.
    """
    out: dict[str, Any] = {}
    for fd in message.DESCRIPTOR.fields:
        value = getattr(message, fd.name)
        if fd.label == FDP.LABEL_REPEATED:
            if fd.message_type is not None and fd.message_type.GetOptions().map_entry:
                value_fd = fd.message_type.fields_by_name["value"]
                out[fd.name] = {k: _scalar_to_python(value_fd, v) for k, v in value.items()}
            else:
                out[fd.name] = [_scalar_to_python(fd, item) for item in value]
        elif fd.has_presence and not message.HasField(fd.name):
            continue
        else:
            out[fd.name] = _scalar_to_python(fd, value)
    return out


# ── Compiled schema ───────────────────────────────────────────────────────────

class ProtobufCompiled:
    schema_type = SchemaType.PROTOBUF

    def __init__(self, file_descriptor: Any, message_descriptor: Any | None) -> None:
        self.file_descriptor = file_descriptor
        self.message_descriptor = message_descriptor
        self.message_class = (
            message_factory.GetMessageClass(message_descriptor)
            if message_descriptor is not None else None
        )

    @property
    def name(self) -> str | None:
        return self.message_descriptor.full_name if self.message_descriptor else None

    def _to_message(self, payload: Any) -> Message:
        if isinstance(payload, Message):
            if payload.DESCRIPTOR.full_name != self.name:
                raise EncodingError(
                    f"Expected message {self.name}, got {payload.DESCRIPTOR.full_name}"
                )
            return payload
        if not isinstance(payload, dict):
            raise EncodingError(f"Protobuf payload must be a dict, got {type(payload).__name__}")
        try:
            return json_format.ParseDict(payload, self.message_class())
        except json_format.ParseError as exc:
            raise EncodingError(
                f"Payload does not match message {self.name}: {exc}", schema_name=self.name
            ) from exc

    def is_valid(self, payload: Any) -> bool:
        try:
            self._to_message(payload)
        except EncodingError:
            return False
        return True

    def encode(self, payload: Any) -> bytes:
        message = self._to_message(payload)
        if not message.IsInitialized():
            raise EncodingError(
                f"Message {self.name} is missing required fields: "
                f"{', '.join(message.FindInitializationErrors())}",
                schema_name=self.name,
            )
        return message.SerializeToString()

    def decode(self, data: bytes, **_: Any) -> dict[str, Any]:
        try:
            message = self.message_class.FromString(data)
        except DecodeError as exc:
            raise DecodingError(
                f"Cannot decode protobuf payload as {self.name}: {exc}", schema_name=self.name
            ) from exc
        return _message_to_dict(message)


# ── Helper ────────────────────────────────────────────────────────────────────

class ProtobufHelper:
    schema_type = SchemaType.PROTOBUF

    def compile(self, schema: ConfluentSchema, options: dict[str, Any] | None = None) -> ProtobufCompiled:
        opts = options or {}
        loader = _PoolLoader(dict(opts.get("imports") or {}))
        file_descriptor = loader.load(opts.get("file_name") or DEFAULT_FILE_NAME, schema.schema)
        message_descriptor = self._select_message(
            loader.pool, file_descriptor, opts.get("message_name")
        )
        log.debug(
            "schema.compiled",
            schema_type=SchemaType.PROTOBUF.value,
            message=message_descriptor.full_name if message_descriptor else None,
        )
        return ProtobufCompiled(file_descriptor, message_descriptor)

    @staticmethod
    def _select_message(pool: Any, file_descriptor: Any, message_name: str | None) -> Any | None:
        if message_name:
            full = message_name.lstrip(".")
            if file_descriptor.package and not full.startswith(file_descriptor.package + "."):
                full = f"{file_descriptor.package}.{full}"
            try:
                return pool.FindMessageTypeByName(full)
            except KeyError as exc:
                raise SchemaCompilationError(f"Message {message_name!r} not found") from exc
        messages = list(file_descriptor.message_types_by_name.values())
        return messages[0] if messages else None

    def validate(self, compiled: ProtobufCompiled) -> None:
        if compiled.message_descriptor is None:
            raise InvalidSchemaError("Protobuf schema declares no message type")

    def get_subject(self, schema: ConfluentSchema, separator: str) -> Subject:
        raise MissingMetadataError("Protobuf schemas need an explicit subject")

    def to_confluent_schema(self, response: SchemaResponse) -> ConfluentSchema:
        return ConfluentSchema(
            type=SchemaType.PROTOBUF,
            schema=response.schema,
            references=tuple(response.references) or None,
        )

    def get_references(self, schema: ConfluentSchema) -> list[SchemaReference] | None:
        return list(schema.references or ())

    def update_options_from_references(
        self, options: dict[str, Any] | None, referred_schemas: dict[str, str]
    ) -> dict[str, Any]:
        updated = dict(options or {})
        updated["imports"] = {**(updated.get("imports") or {}), **referred_schemas}
        return updated


__all__ = ["ProtobufHelper", "ProtobufCompiled"]
