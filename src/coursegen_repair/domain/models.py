"""
coursegen-repair — shared domain enums and timestamp helpers

File: src/coursegen_repair/domain/models.py
Last updated: 2026-02-11

Purpose
- Enumerations shared by the generation logger, the log store and the CLI.
- One canonical UTC timestamp text format for everything persisted.

Functional requirements
- Persisted timestamps are ``YYYY-MM-DDTHH:MM:SS.ffffffZ`` so text order equals time order.
- Naive datetimes are rejected rather than guessed.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum


class GenerationType(StrEnum):
    COURSE = "course"
    LESSON = "lesson"
    QUIZ = "quiz"
    DIAGNOSTIC = "diagnostic"
    TRIVIA = "trivia"
    COMPLETION_SUMMARY = "completion_summary"


class GenerationOutcome(StrEnum):
    SUCCESS = "success"
    REPAIRED_LAYER0 = "repaired_layer0"
    REPAIRED_LAYER1 = "repaired_layer1"
    REPAIRED_LAYER2 = "repaired_layer2"
    FAILED = "failed"


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime in the canonical persisted form."""

    if not isinstance(value, datetime):
        raise TypeError(f"expected datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("timestamp must be timezone-aware")
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a missing offset is rejected."""

    if not isinstance(value, str) or not value.strip():
        raise ValueError("timestamp must be a non-empty string")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp must include a UTC offset: {value!r}")
    return parsed.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = [
    "GenerationOutcome",
    "GenerationType",
    "format_timestamp",
    "parse_timestamp",
    "utc_now",
]
