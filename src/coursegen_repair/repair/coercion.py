"""
coursegen-repair — schema coercion engine

File: src/coursegen_repair/repair/coercion.py
Last updated: 2026-02-11

Purpose
- Turn a parsed-but-invalid model value into one likely to pass strict validation,
  guided only by the schema descriptor.

What should be included in this file
- ``coerce_to_schema``: pure, deterministic, recursive coercion returning ``Coerced | None``.
- ``try_coerce_and_validate``: coercion followed by the strict validator.

Functional requirements
- Unknown object fields are dropped; missing or null optional fields are omitted.
- A missing required field fails the object unless its spec declares a default.
- Strings holding JSON are parsed where an array/object is expected (quote repair first
  when the naive parse fails).
- Narrow scalar rules only: numeric string -> number, "true"/"false" -> bool,
  number/bool -> string, object/array -> compact JSON string. No truthy/falsy coercion.
- Enum matching: exact, then case/separator-normalized, then the single closest allowed
  value by normalized Levenshtein distance within ``ENUM_MATCH_THRESHOLD``.
- Strict arrays fail on any failing element; best-effort arrays drop failing elements.

Non-functional requirements
- Never raises for malformed input; absence of a result is the only failure signal.
"""

from __future__ import annotations

import copy
import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, TypeAlias, cast

import structlog
from rapidfuzz.distance import Levenshtein

from coursegen_repair.constants import ENUM_MATCH_THRESHOLD
from coursegen_repair.repair.quote_repair import loads_with_quote_repair
from coursegen_repair.schema.descriptor import (
    ArraySchema,
    EnumSchema,
    JSONValue,
    ObjectSchema,
    PrimitiveSchema,
    PrimitiveType,
    SchemaDescriptor,
)
from coursegen_repair.schema.validation import ValidationIssue, validate_value

_NUMBER_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$"
)
_INTEGER_LITERAL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[+-]?\d+$")
_ENUM_SEPARATORS: Final[re.Pattern[str]] = re.compile(r"[\s_-]+")


@dataclass(frozen=True, slots=True)
class Coerced:
    value: JSONValue


CoercionResult: TypeAlias = Coerced | None


@dataclass(frozen=True, slots=True)
class CoerceAndValidateOutcome:
    """Validated value (or ``None``) plus the issues that blocked it."""

    value: JSONValue | None
    issues: tuple[ValidationIssue, ...]

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.issues


def coerce_to_schema(value: object, schema: SchemaDescriptor) -> CoercionResult:
    """Coerce ``value`` toward ``schema``; ``None`` means no schema-shaped value exists."""

    try:
        return _coerce(value, schema)
    except RecursionError:
        return None


def try_coerce_and_validate(
    value: object,
    schema: SchemaDescriptor,
    *,
    logger: Any | None = None,
) -> CoerceAndValidateOutcome:
    """Coerce then strictly validate; issues are logged one event per issue."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    result = coerce_to_schema(value, schema)
    candidate: object = value if result is None else result.value
    issues = validate_value(candidate, schema)
    if result is not None and not issues:
        return CoerceAndValidateOutcome(value=result.value, issues=())

    log.info("coercion_validation_failed", issue_count=len(issues), coerced=result is not None)
    for issue in issues:
        log.info(
            "coercion_validation_issue",
            path=issue.dotted_path,
            code=issue.code.value,
            message=issue.message,
        )
    return CoerceAndValidateOutcome(value=None, issues=issues)


def match_enum_value(
    value: str,
    allowed_values: tuple[str, ...],
    *,
    threshold: float = ENUM_MATCH_THRESHOLD,
) -> str | None:
    """Resolve ``value`` to an allowed enum member, or ``None`` when nothing is close enough."""

    if value in allowed_values:
        return value

    normalized = _normalize_enum(value)
    for candidate in allowed_values:
        if _normalize_enum(candidate) == normalized:
            return candidate

    best: str | None = None
    best_distance = math.inf
    tied = False
    for candidate in allowed_values:
        distance = Levenshtein.normalized_distance(normalized, _normalize_enum(candidate))
        if distance < best_distance:
            best, best_distance, tied = candidate, distance, False
        elif distance == best_distance:
            tied = True
    if best is None or tied or best_distance > threshold:
        return None
    return best


def _coerce(value: object, schema: SchemaDescriptor) -> CoercionResult:
    if isinstance(schema, PrimitiveSchema):
        return _coerce_primitive(value, schema.type)
    if isinstance(schema, EnumSchema):
        if not isinstance(value, str):
            return None
        matched = match_enum_value(value, schema.allowed_values)
        return None if matched is None else Coerced(matched)
    if isinstance(schema, ArraySchema):
        return _coerce_array(value, schema)
    if isinstance(schema, ObjectSchema):
        return _coerce_object(value, schema)
    return None


def _coerce_array(value: object, schema: ArraySchema) -> CoercionResult:
    if isinstance(value, str):
        value = _parse_embedded_json(value)
    if not isinstance(value, list):
        return None

    items: list[JSONValue] = []
    for element in value:
        result = _coerce(element, schema.items)
        if result is None:
            if schema.best_effort:
                continue
            return None
        items.append(result.value)
    return Coerced(items)


def _coerce_object(value: object, schema: ObjectSchema) -> CoercionResult:
    if isinstance(value, str):
        value = _parse_embedded_json(value)
    if not isinstance(value, Mapping):
        return None

    out: dict[str, JSONValue] = {}
    for name, spec in schema.fields.items():
        raw = value.get(name)
        if raw is None:
            if spec.has_default:
                out[name] = _copy_json(spec.default)
                continue
            if spec.required:
                return None
            continue
        result = _coerce(raw, spec.schema)
        if result is None:
            return None
        out[name] = result.value
    return Coerced(out)


def _coerce_primitive(value: object, expected: PrimitiveType) -> CoercionResult:
    if expected is PrimitiveType.STRING:
        if isinstance(value, str):
            return Coerced(value)
        if isinstance(value, bool):
            return Coerced("true" if value else "false")
        if isinstance(value, (int, float)):
            return Coerced(json.dumps(value)) if _is_finite(value) else None
        if isinstance(value, (list, Mapping)):
            try:
                return Coerced(json.dumps(value, ensure_ascii=False, separators=(",", ":")))
            except (TypeError, ValueError):
                return None
        return None

    if expected is PrimitiveType.BOOLEAN:
        if isinstance(value, bool):
            return Coerced(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "true":
                return Coerced(True)
            if lowered == "false":
                return Coerced(False)
        return None

    number = _as_number(value)
    if number is None:
        return None
    if expected is PrimitiveType.INTEGER:
        if isinstance(number, float):
            return Coerced(int(number)) if number.is_integer() else None
        return Coerced(number)
    return Coerced(number)


def _as_number(value: object) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if _is_finite(value) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not _NUMBER_PATTERN.match(text):
        return None
    if _INTEGER_LITERAL_PATTERN.match(text):
        return int(text)
    parsed = float(text)
    return parsed if math.isfinite(parsed) else None


def _parse_embedded_json(text: str) -> object | None:
    try:
        return loads_with_quote_repair(text)
    except (json.JSONDecodeError, RecursionError):
        return None


def _normalize_enum(value: str) -> str:
    return _ENUM_SEPARATORS.sub("_", value.strip().casefold())


def _is_finite(value: int | float) -> bool:
    return not isinstance(value, float) or math.isfinite(value)


def _copy_json(value: object) -> JSONValue:
    return cast("JSONValue", copy.deepcopy(value))


__all__ = [
    "CoerceAndValidateOutcome",
    "Coerced",
    "CoercionResult",
    "coerce_to_schema",
    "match_enum_value",
    "try_coerce_and_validate",
]
