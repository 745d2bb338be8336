"""
coursegen-repair — generation log repository

File: src/coursegen_repair/persistence/repositories.py
Last updated: 2026-02-11

Purpose
- Read/write access to ``generation_logs`` for the logger, the cleanup job and the admin CLI.

What should be included in this file
- ``GenerationLogRecord``: validated row model with canonical serialization.
- ``GenerationLogFilters``: the filter set shared by list, count and stats queries.
- ``GenerationLogRepo``: add/get/list/count/outcome_stats plus the expiry redaction batch.

Functional requirements
- Listing never returns the sensitive text columns; ``get`` does.
- ``redact_expired`` is a single UPDATE inside ``BEGIN IMMEDIATE`` and is idempotent.

Non-functional requirements
- Must be efficient; listing is paginated and served by the created_at index.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final, TypeVar, cast

from coursegen_repair.domain.ids import validate_generation_log_id
from coursegen_repair.domain.models import (
    GenerationOutcome,
    GenerationType,
    format_timestamp,
    parse_timestamp,
)
from coursegen_repair.persistence.state_db import RowValue, SQLParams, StateDB, canonical_json

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", GenerationType, GenerationOutcome)

MAX_PAGE_SIZE: Final[int] = 200

_COLUMNS: Final[tuple[str, ...]] = (
    "id",
    "generation_type",
    "schema_name",
    "model_id",
    "provider",
    "user_id",
    "course_id",
    "lesson_id",
    "outcome",
    "duration_ms",
    "layer0_called",
    "layer0_result",
    "layer0_error",
    "layer1_called",
    "layer1_success",
    "layer1_had_wrapper",
    "wrapper_type",
    "layer2_called",
    "layer2_success",
    "layer2_model_id",
    "raw_output_text",
    "raw_output_len",
    "raw_output_redacted",
    "validation_errors",
    "error_message",
    "prompt_hash",
    "prompt_text",
    "prompt_redacted",
    "sensitive_text_expires_at",
    "sensitive_text_redacted_at",
    "language",
    "difficulty",
    "created_at",
)
_SENSITIVE_COLUMNS: Final[frozenset[str]] = frozenset({"raw_output_text", "prompt_text"})
_LIST_COLUMNS: Final[tuple[str, ...]] = tuple(
    column for column in _COLUMNS if column not in _SENSITIVE_COLUMNS
)
_BOOL_COLUMNS: Final[frozenset[str]] = frozenset(
    {
        "layer0_called",
        "layer1_called",
        "layer1_success",
        "layer1_had_wrapper",
        "layer2_called",
        "layer2_success",
        "raw_output_redacted",
        "prompt_redacted",
    }
)

_INSERT_SQL: Final[str] = (
    f"INSERT INTO generation_logs ({', '.join(_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
)

_REDACT_EXPIRED_SQL: Final[str] = """
UPDATE generation_logs
SET raw_output_text = NULL,
    prompt_text = NULL,
    sensitive_text_redacted_at = ?
WHERE sensitive_text_expires_at IS NOT NULL
  AND sensitive_text_expires_at <= ?
  AND sensitive_text_redacted_at IS NULL
  AND (raw_output_text IS NOT NULL OR prompt_text IS NOT NULL)
"""


@dataclass(slots=True)
class GenerationLogRecord:
    """One structured generation call, as persisted for the admin log viewer."""

    id: str
    generation_type: GenerationType
    schema_name: str
    model_id: str
    provider: str
    outcome: GenerationOutcome
    duration_ms: int
    created_at: datetime
    user_id: str | None = None
    course_id: str | None = None
    lesson_id: str | None = None
    layer0_called: bool = False
    layer0_result: str | None = None
    layer0_error: str | None = None
    layer1_called: bool = False
    layer1_success: bool = False
    layer1_had_wrapper: bool = False
    wrapper_type: str | None = None
    layer2_called: bool = False
    layer2_success: bool = False
    layer2_model_id: str | None = None
    raw_output_text: str | None = None
    raw_output_len: int | None = None
    raw_output_redacted: bool = False
    validation_errors: list[dict[str, JSONValue]] | None = None
    error_message: str | None = None
    prompt_hash: str | None = None
    prompt_text: str | None = None
    prompt_redacted: bool = False
    sensitive_text_expires_at: datetime | None = None
    sensitive_text_redacted_at: datetime | None = None
    language: str | None = None
    difficulty: str | None = None

    def __post_init__(self) -> None:
        validate_generation_log_id(self.id)
        self.generation_type = _as_enum(GenerationType, self.generation_type, "generation_type")
        self.outcome = _as_enum(GenerationOutcome, self.outcome, "outcome")
        self.schema_name = _as_non_empty_str(self.schema_name, "GenerationLogRecord.schema_name")
        self.model_id = _as_non_empty_str(self.model_id, "GenerationLogRecord.model_id")
        self.provider = _as_non_empty_str(self.provider, "GenerationLogRecord.provider")
        self.duration_ms = _as_non_negative_int(self.duration_ms, "GenerationLogRecord.duration_ms")
        self.created_at = _as_utc_datetime(self.created_at, "GenerationLogRecord.created_at")
        if self.raw_output_len is not None:
            self.raw_output_len = _as_non_negative_int(
                self.raw_output_len, "GenerationLogRecord.raw_output_len"
            )
        if self.prompt_hash is not None and len(self.prompt_hash) != 64:
            raise ValueError("GenerationLogRecord.prompt_hash: expected 64 hex characters")
        if self.validation_errors is not None:
            self.validation_errors = [
                _as_json_object(item, "GenerationLogRecord.validation_errors[]")
                for item in self.validation_errors
            ]
        for name in ("sensitive_text_expires_at", "sensitive_text_redacted_at"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, _as_utc_datetime(value, f"GenerationLogRecord.{name}"))
        if self.sensitive_text_redacted_at is not None and (
            self.raw_output_text is not None or self.prompt_text is not None
        ):
            raise ValueError(
                "GenerationLogRecord: sensitive text must be null once sensitive_text_redacted_at"
                " is set"
            )
        for name in _BOOL_COLUMNS:
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"GenerationLogRecord.{name}: expected boolean")

    def to_dict(self) -> dict[str, JSONValue]:
        out: dict[str, JSONValue] = {}
        for column in _COLUMNS:
            out[column] = _to_json_value(getattr(self, column))
        return out

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    def to_row(self) -> tuple[RowValue, ...]:
        values: list[RowValue] = []
        for column in _COLUMNS:
            value = getattr(self, column)
            if column == "validation_errors":
                values.append(None if value is None else canonical_json(value))
            elif isinstance(value, bool):
                values.append(int(value))
            else:
                values.append(cast("RowValue", _to_json_value(value)))
        return tuple(values)

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> GenerationLogRecord:
        data = _as_mapping(payload, "GenerationLogRecord")
        kwargs: dict[str, object] = {}
        for column in _COLUMNS:
            if column in data:
                kwargs[column] = data[column]
        return cls(**kwargs)  # type: ignore[arg-type]

    @classmethod
    def from_row(cls, row: Mapping[str, RowValue]) -> GenerationLogRecord:
        """Rebuild a record from a DB row; absent sensitive columns load as ``None``."""

        kwargs: dict[str, object] = {}
        for column in _COLUMNS:
            value: object = row.get(column)
            if column in _BOOL_COLUMNS:
                value = bool(value)
            elif column == "validation_errors" and value is not None:
                value = _load_json_list(_row_text(row, column), "generation_logs.validation_errors")
            kwargs[column] = value
        return cls(**kwargs)  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class GenerationLogFilters:
    generation_type: GenerationType | str | None = None
    outcome: GenerationOutcome | str | None = None
    model_id: str | None = None
    course_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    def where_clause(self) -> tuple[str, tuple[object, ...]]:
        """Return ``(" WHERE ...", params)``; empty string when no filter is set."""

        clauses: list[str] = []
        params: list[object] = []
        if self.generation_type is not None:
            clauses.append("generation_type = ?")
            params.append(_as_enum(GenerationType, self.generation_type, "generation_type").value)
        if self.outcome is not None:
            clauses.append("outcome = ?")
            params.append(_as_enum(GenerationOutcome, self.outcome, "outcome").value)
        if self.model_id is not None:
            clauses.append("model_id = ?")
            params.append(_as_non_empty_str(self.model_id, "filters.model_id"))
        if self.course_id is not None:
            clauses.append("course_id = ?")
            params.append(_as_non_empty_str(self.course_id, "filters.course_id"))
        if self.created_from is not None:
            clauses.append("created_at >= ?")
            params.append(format_timestamp(self.created_from))
        if self.created_to is not None:
            clauses.append("created_at <= ?")
            params.append(format_timestamp(self.created_to))
        if not clauses:
            return "", ()
        return " WHERE " + " AND ".join(clauses), tuple(params)


class _BaseRepo:
    def __init__(self, db: StateDB) -> None:
        self._db = db
        self._db.migrate()

    @staticmethod
    def _validate_page(limit: int, offset: int) -> None:
        if limit <= 0 or limit > MAX_PAGE_SIZE:
            raise ValueError(f"limit must be in [1, {MAX_PAGE_SIZE}]")
        if offset < 0:
            raise ValueError("offset must be >= 0")


class GenerationLogRepo(_BaseRepo):
    """Repository for per-call generation logs and their sensitive payload lifecycle."""

    def add(self, record: GenerationLogRecord) -> GenerationLogRecord:
        with self._db.transaction() as conn:
            self._db.execute(_INSERT_SQL, record.to_row(), conn=conn)
        return record

    def get(self, log_id: str) -> GenerationLogRecord | None:
        validate_generation_log_id(log_id)
        row = self._db.query_one(
            f"SELECT {', '.join(_COLUMNS)} FROM generation_logs WHERE id = ?",
            (log_id,),
        )
        if row is None:
            return None
        return GenerationLogRecord.from_row(row)

    def list(
        self,
        filters: GenerationLogFilters | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[GenerationLogRecord]:
        """Newest first; ``raw_output_text`` and ``prompt_text`` are always ``None``."""

        self._validate_page(limit, offset)
        where, params = (filters or GenerationLogFilters()).where_clause()
        sql = (
            f"SELECT {', '.join(_LIST_COLUMNS)} FROM generation_logs{where}"
            " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        )
        rows = self._db.query_all(sql, cast("SQLParams", (*params, limit, offset)))
        return [GenerationLogRecord.from_row(row) for row in rows]

    def count(self, filters: GenerationLogFilters | None = None) -> int:
        where, params = (filters or GenerationLogFilters()).where_clause()
        row = self._db.query_one(
            f"SELECT COUNT(*) AS total FROM generation_logs{where}",
            cast("SQLParams", params),
        )
        total = None if row is None else row.get("total")
        return total if isinstance(total, int) else 0

    def outcome_stats(self, filters: GenerationLogFilters | None = None) -> dict[str, int]:
        """Count per outcome; every outcome is present, zero when unseen."""

        where, params = (filters or GenerationLogFilters()).where_clause()
        rows = self._db.query_all(
            f"SELECT outcome, COUNT(*) AS total FROM generation_logs{where} GROUP BY outcome",
            cast("SQLParams", params),
        )
        stats = {outcome.value: 0 for outcome in GenerationOutcome}
        for row in rows:
            outcome = row.get("outcome")
            total = row.get("total")
            if isinstance(outcome, str) and isinstance(total, int):
                stats[outcome] = total
        return stats

    def redact_expired(self, now: datetime) -> int:
        """Null expired sensitive text in one atomic batch; returns the rows changed."""

        stamp = format_timestamp(now)
        with self._db.transaction(immediate=True) as conn:
            return self._db.execute(_REDACT_EXPIRED_SQL, (stamp, stamp), conn=conn)


def _to_json_value(value: object) -> JSONValue:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (GenerationType, GenerationOutcome)):
        return value.value
    return cast("JSONValue", value)


def _row_text(row: Mapping[str, RowValue], key: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        raise ValueError(f"generation_logs.{key}: expected text value")
    return value


def _load_json_list(payload: str, path: str) -> list[object]:
    try:
        loaded = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(loaded, list):
        raise ValueError(f"{path}: JSON root must be array")
    return loaded


def _as_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object")
    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ValueError(f"{path}: object keys must be strings")
        parsed[key] = item
    return parsed


def _as_non_empty_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string")
    parsed = value.strip()
    if not parsed:
        raise ValueError(f"{path}: must not be empty")
    return parsed


def _as_non_negative_int(value: object, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{path}: expected integer")
    if value < 0:
        raise ValueError(f"{path}: must be >= 0")
    return value


def _as_json_object(value: object, path: str) -> dict[str, JSONValue]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object")
    parsed: dict[str, JSONValue] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ValueError(f"{path}: key must be string")
        parsed[key] = _as_json_value(item, f"{path}.{key}")
    return parsed


def _as_json_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"{path}: float must be finite")
        return value
    if isinstance(value, Sequence):
        return [_as_json_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        return _as_json_object(value, path)
    raise ValueError(f"{path}: value is not JSON-serializable")


def _as_utc_datetime(value: object, path: str) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError(f"{path}: datetime must be timezone-aware UTC")
        return value.astimezone(UTC)
    if isinstance(value, str):
        try:
            return parse_timestamp(value)
        except ValueError as exc:
            raise ValueError(f"{path}: invalid ISO-8601 datetime ({exc})") from exc
    raise ValueError(f"{path}: expected datetime or ISO-8601 string")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string")
    try:
        return enum_type(value)
    except ValueError as exc:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        raise ValueError(f"{path}: invalid value {value!r}; allowed: {allowed}") from exc


__all__ = [
    "MAX_PAGE_SIZE",
    "GenerationLogFilters",
    "GenerationLogRecord",
    "GenerationLogRepo",
]
