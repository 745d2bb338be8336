"""
coursegen-repair — schema descriptor

File: src/coursegen_repair/schema/descriptor.py
Last updated: 2026-02-11

Purpose
- Explicit, introspectable description of the shape a model output must take.

What should be included in this file
- Tagged descriptor variants: primitive, array, object, enum.
- Field specs with requiredness and optional explicit defaults.
- JSON Schema rendering for providers that accept a structured-output contract.

Functional requirements
- Descriptors are immutable and shared read-only across repair attempts.
- Descriptor trees are finite; named references are resolved by the registry before
  a descriptor is constructed.

Non-functional requirements
- No dependency on any validation framework's object model.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, StrEnum
from types import MappingProxyType
from typing import Final, TypeAlias

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class SchemaKind(StrEnum):
    PRIMITIVE = "primitive"
    ARRAY = "array"
    OBJECT = "object"
    ENUM = "enum"


class PrimitiveType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"


class _Missing(Enum):
    TOKEN = 0

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final = _Missing.TOKEN


@dataclass(frozen=True, slots=True)
class PrimitiveSchema:
    type: PrimitiveType
    description: str | None = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "type", PrimitiveType(self.type))
        except ValueError as exc:
            allowed = ", ".join(item.value for item in PrimitiveType)
            raise ValueError(
                f"unsupported primitive type {self.type!r}; expected {allowed}"
            ) from exc

    @property
    def kind(self) -> SchemaKind:
        return SchemaKind.PRIMITIVE

    def to_json_schema(self) -> dict[str, JSONValue]:
        return to_json_schema(self)


@dataclass(frozen=True, slots=True)
class ArraySchema:
    """Array of ``items``; ``best_effort`` drops failing elements instead of failing the array."""

    items: SchemaDescriptor
    best_effort: bool = False
    min_items: int | None = None
    max_items: int | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        _require_descriptor(self.items, "ArraySchema.items")
        if not isinstance(self.best_effort, bool):
            raise TypeError("ArraySchema.best_effort must be a bool")
        for name in ("min_items", "max_items"):
            bound = getattr(self, name)
            if bound is not None and (isinstance(bound, bool) or not isinstance(bound, int)):
                raise TypeError(f"ArraySchema.{name} must be an int or None")
            if bound is not None and bound < 0:
                raise ValueError(f"ArraySchema.{name} must be >= 0")
        if (
            self.min_items is not None
            and self.max_items is not None
            and self.min_items > self.max_items
        ):
            raise ValueError("ArraySchema.min_items must be <= max_items")

    @property
    def kind(self) -> SchemaKind:
        return SchemaKind.ARRAY

    def to_json_schema(self) -> dict[str, JSONValue]:
        return to_json_schema(self)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One declared object field.

    A field with an explicit ``default`` is filled with that value when absent,
    even if it is required. ``MISSING`` means no default was declared.
    """

    schema: SchemaDescriptor
    required: bool = True
    default: JSONValue | _Missing = MISSING

    def __post_init__(self) -> None:
        _require_descriptor(self.schema, "FieldSpec.schema")
        if not isinstance(self.required, bool):
            raise TypeError("FieldSpec.required must be a bool")

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


@dataclass(frozen=True, slots=True)
class ObjectSchema:
    fields: Mapping[str, FieldSpec]
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.fields, Mapping):
            raise TypeError("ObjectSchema.fields must be a mapping")
        normalized: dict[str, FieldSpec] = {}
        for name, spec in self.fields.items():
            if not isinstance(name, str) or not name:
                raise ValueError("ObjectSchema field names must be non-empty strings")
            if not isinstance(spec, FieldSpec):
                raise TypeError(f"ObjectSchema.fields[{name!r}] must be a FieldSpec")
            normalized[name] = spec
        object.__setattr__(self, "fields", MappingProxyType(normalized))

    @property
    def kind(self) -> SchemaKind:
        return SchemaKind.OBJECT

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(name for name, spec in self.fields.items() if spec.required)

    def to_json_schema(self) -> dict[str, JSONValue]:
        return to_json_schema(self)


@dataclass(frozen=True, slots=True)
class EnumSchema:
    allowed_values: tuple[str, ...]
    description: str | None = None

    def __post_init__(self) -> None:
        values = tuple(self.allowed_values)
        if not values:
            raise ValueError("EnumSchema.allowed_values must not be empty")
        for value in values:
            if not isinstance(value, str) or not value:
                raise ValueError("EnumSchema.allowed_values must be non-empty strings")
        if len(set(values)) != len(values):
            raise ValueError(f"EnumSchema.allowed_values contains duplicates: {values!r}")
        object.__setattr__(self, "allowed_values", values)

    @property
    def kind(self) -> SchemaKind:
        return SchemaKind.ENUM

    def to_json_schema(self) -> dict[str, JSONValue]:
        return to_json_schema(self)


SchemaDescriptor: TypeAlias = PrimitiveSchema | ArraySchema | ObjectSchema | EnumSchema

STRING: Final[PrimitiveSchema] = PrimitiveSchema(PrimitiveType.STRING)
NUMBER: Final[PrimitiveSchema] = PrimitiveSchema(PrimitiveType.NUMBER)
INTEGER: Final[PrimitiveSchema] = PrimitiveSchema(PrimitiveType.INTEGER)
BOOLEAN: Final[PrimitiveSchema] = PrimitiveSchema(PrimitiveType.BOOLEAN)


def object_schema(
    required: Mapping[str, SchemaDescriptor] | None = None,
    optional: Mapping[str, SchemaDescriptor] | None = None,
    *,
    description: str | None = None,
) -> ObjectSchema:
    """Build an ``ObjectSchema`` from required/optional name-to-descriptor maps."""

    fields: dict[str, FieldSpec] = {}
    for name, schema in (required or {}).items():
        fields[name] = FieldSpec(schema, required=True)
    for name, schema in (optional or {}).items():
        if name in fields:
            raise ValueError(f"field {name!r} declared as both required and optional")
        fields[name] = FieldSpec(schema, required=False)
    return ObjectSchema(fields, description=description)


def to_json_schema(descriptor: SchemaDescriptor) -> dict[str, JSONValue]:
    """Render ``descriptor`` as a JSON Schema document (draft 2020-12 subset)."""

    out: dict[str, JSONValue]
    if isinstance(descriptor, PrimitiveSchema):
        out = {"type": descriptor.type.value}
    elif isinstance(descriptor, EnumSchema):
        out = {"type": "string", "enum": list(descriptor.allowed_values)}
    elif isinstance(descriptor, ArraySchema):
        out = {"type": "array", "items": to_json_schema(descriptor.items)}
        if descriptor.min_items is not None:
            out["minItems"] = descriptor.min_items
        if descriptor.max_items is not None:
            out["maxItems"] = descriptor.max_items
    elif isinstance(descriptor, ObjectSchema):
        properties: dict[str, JSONValue] = {
            name: to_json_schema(spec.schema) for name, spec in descriptor.fields.items()
        }
        out = {
            "type": "object",
            "properties": properties,
            "required": list(descriptor.required_fields),
            "additionalProperties": False,
        }
    else:
        raise TypeError(f"unsupported schema descriptor: {type(descriptor).__name__}")

    if descriptor.description:
        out["description"] = descriptor.description
    return out


def _require_descriptor(value: object, path: str) -> None:
    if not isinstance(value, (PrimitiveSchema, ArraySchema, ObjectSchema, EnumSchema)):
        raise TypeError(f"{path} must be a schema descriptor, got {type(value).__name__}")


__all__ = [
    "BOOLEAN",
    "INTEGER",
    "MISSING",
    "NUMBER",
    "STRING",
    "ArraySchema",
    "EnumSchema",
    "FieldSpec",
    "JSONScalar",
    "JSONValue",
    "ObjectSchema",
    "PrimitiveSchema",
    "PrimitiveType",
    "SchemaDescriptor",
    "SchemaKind",
    "object_schema",
    "to_json_schema",
]
