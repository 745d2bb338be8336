"""
coursegen-repair — sensitive payload retention

File: src/coursegen_repair/telemetry/retention.py
Last updated: 2026-02-11

Purpose
- Decide when stored model output and prompt text expire, and null it once it has.

Functional requirements
- The retention window is lenient: non-numeric, non-finite or non-positive settings
  fall back to the default 24 hours and log a warning instead of raising.
- Cleanup is an idempotent batch returning the number of rows redacted.
- Listing logs for the admin surface runs cleanup first.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog

from coursegen_repair.constants import DEFAULT_RETENTION_HOURS
from coursegen_repair.domain.models import format_timestamp, utc_now
from coursegen_repair.persistence.repositories import (
    GenerationLogFilters,
    GenerationLogRecord,
    GenerationLogRepo,
)


def resolve_retention_hours(value: object, *, logger: Any | None = None) -> float:
    """Parse a retention setting; anything unusable becomes ``DEFAULT_RETENTION_HOURS``."""

    if value is None:
        return float(DEFAULT_RETENTION_HOURS)

    parsed: float | None
    if isinstance(value, bool):
        parsed = None
    elif isinstance(value, (int, float)):
        parsed = float(value)
    elif isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            parsed = None
    else:
        parsed = None

    if parsed is None or not math.isfinite(parsed) or parsed <= 0:
        log = logger if logger is not None else structlog.get_logger(__name__)
        log.warning(
            "retention_hours_invalid",
            value=repr(value),
            fallback_hours=DEFAULT_RETENTION_HOURS,
        )
        return float(DEFAULT_RETENTION_HOURS)
    return parsed


def sensitive_text_expiry(now: datetime, retention_hours: float) -> datetime:
    return now + timedelta(hours=retention_hours)


def cleanup_expired_payloads(
    repo: GenerationLogRepo,
    *,
    now: datetime | None = None,
    logger: Any | None = None,
) -> int:
    """Redact every expired, not-yet-redacted sensitive payload; returns the count."""

    moment = now if now is not None else utc_now()
    redacted = repo.redact_expired(moment)
    if redacted:
        log = logger if logger is not None else structlog.get_logger(__name__)
        log.info(
            "generation_log_payloads_redacted",
            count=redacted,
            now=format_timestamp(moment),
        )
    return redacted


@dataclass(frozen=True, slots=True)
class GenerationLogPage:
    items: tuple[GenerationLogRecord, ...]
    total: int
    limit: int
    offset: int
    redacted: int = 0


def list_generation_logs(
    repo: GenerationLogRepo,
    filters: GenerationLogFilters | None = None,
    *,
    limit: int = 50,
    offset: int = 0,
    now: datetime | None = None,
    logger: Any | None = None,
) -> GenerationLogPage:
    """Admin listing: expired payloads are redacted before the page is read."""

    redacted = cleanup_expired_payloads(repo, now=now, logger=logger)
    items = repo.list(filters, limit=limit, offset=offset)
    return GenerationLogPage(
        items=tuple(items),
        total=repo.count(filters),
        limit=limit,
        offset=offset,
        redacted=redacted,
    )


__all__ = [
    "GenerationLogPage",
    "cleanup_expired_payloads",
    "list_generation_logs",
    "resolve_retention_hours",
    "sensitive_text_expiry",
]
