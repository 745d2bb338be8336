"""
coursegen-repair — strict descriptor validation

File: src/coursegen_repair/schema/validation.py
Last updated: 2026-02-11

Purpose
- Final schema check applied to every candidate value, before and after repair.

What should be included in this file
- Pathed, structured validation issues with stable codes.
- A pure validator over the descriptor tree.

Functional requirements
- Unknown object keys are reported (``unrecognized_keys``); the coercion engine strips them.
- Booleans are never accepted where numbers are expected.

Non-functional requirements
- Deterministic issue ordering: declared field order, then unknown keys sorted.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeAlias

from coursegen_repair.schema.descriptor import (
    ArraySchema,
    EnumSchema,
    JSONValue,
    ObjectSchema,
    PrimitiveSchema,
    PrimitiveType,
    SchemaDescriptor,
)

PathPart: TypeAlias = str | int


class IssueCode(StrEnum):
    INVALID_TYPE = "invalid_type"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    MISSING_FIELD = "missing_field"
    UNRECOGNIZED_KEYS = "unrecognized_keys"
    TOO_SMALL = "too_small"
    TOO_BIG = "too_big"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Single structured validation failure."""

    path: tuple[PathPart, ...]
    code: IssueCode
    message: str

    @property
    def dotted_path(self) -> str:
        if not self.path:
            return "<root>"
        rendered = ""
        for part in self.path:
            if isinstance(part, int):
                rendered += f"[{part}]"
            elif rendered:
                rendered += f".{part}"
            else:
                rendered = part
        return rendered

    def to_dict(self) -> dict[str, JSONValue]:
        return {"path": list(self.path), "code": self.code.value, "message": self.message}


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ValidationIssue] = []

    def add(self, path: tuple[PathPart, ...], code: IssueCode, message: str) -> None:
        self._items.append(ValidationIssue(path=path, code=code, message=message))

    def items(self) -> tuple[ValidationIssue, ...]:
        return tuple(self._items)


def validate_value(value: object, schema: SchemaDescriptor) -> tuple[ValidationIssue, ...]:
    """Return every issue found validating ``value`` against ``schema``; empty means valid."""

    issues = _IssueCollector()
    _validate(value, schema, (), issues)
    return issues.items()


def is_valid(value: object, schema: SchemaDescriptor) -> bool:
    return not validate_value(value, schema)


def format_issues(issues: tuple[ValidationIssue, ...]) -> str:
    if not issues:
        return "no validation issues"
    return "\n".join(f"- {item.dotted_path}: {item.message} ({item.code.value})" for item in issues)


def _validate(
    value: object,
    schema: SchemaDescriptor,
    path: tuple[PathPart, ...],
    issues: _IssueCollector,
) -> None:
    if isinstance(schema, PrimitiveSchema):
        if not _matches_primitive(value, schema.type):
            issues.add(
                path,
                IssueCode.INVALID_TYPE,
                f"expected {schema.type.value}, received {_type_name(value)}",
            )
        return

    if isinstance(schema, EnumSchema):
        if not isinstance(value, str) or value not in schema.allowed_values:
            allowed = " | ".join(repr(item) for item in schema.allowed_values)
            issues.add(
                path,
                IssueCode.INVALID_ENUM_VALUE,
                f"invalid enum value; expected {allowed}, received {value!r}",
            )
        return

    if isinstance(schema, ArraySchema):
        if not isinstance(value, list):
            issues.add(
                path, IssueCode.INVALID_TYPE, f"expected array, received {_type_name(value)}"
            )
            return
        if schema.min_items is not None and len(value) < schema.min_items:
            issues.add(
                path,
                IssueCode.TOO_SMALL,
                f"array must contain at least {schema.min_items} element(s)",
            )
        if schema.max_items is not None and len(value) > schema.max_items:
            issues.add(
                path,
                IssueCode.TOO_BIG,
                f"array must contain at most {schema.max_items} element(s)",
            )
        for index, item in enumerate(value):
            _validate(item, schema.items, (*path, index), issues)
        return

    if isinstance(schema, ObjectSchema):
        if not isinstance(value, Mapping):
            issues.add(
                path, IssueCode.INVALID_TYPE, f"expected object, received {_type_name(value)}"
            )
            return
        for name, spec in schema.fields.items():
            if name not in value or (value[name] is None and not spec.required):
                if spec.required:
                    issues.add((*path, name), IssueCode.MISSING_FIELD, "required")
                continue
            _validate(value[name], spec.schema, (*path, name), issues)
        unknown = sorted(str(key) for key in value if key not in schema.fields)
        if unknown:
            issues.add(
                path,
                IssueCode.UNRECOGNIZED_KEYS,
                f"unrecognized key(s) in object: {', '.join(repr(key) for key in unknown)}",
            )
        return

    raise TypeError(f"unsupported schema descriptor: {type(schema).__name__}")


def _matches_primitive(value: object, expected: PrimitiveType) -> bool:
    if expected is PrimitiveType.STRING:
        return isinstance(value, str)
    if expected is PrimitiveType.BOOLEAN:
        return isinstance(value, bool)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    if expected is PrimitiveType.INTEGER:
        return isinstance(value, int) or value.is_integer()
    return True


def _type_name(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


__all__ = [
    "IssueCode",
    "PathPart",
    "ValidationIssue",
    "format_issues",
    "is_valid",
    "validate_value",
]
