"""Structured logging setup: structlog processors with JSON-lines output and redaction."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from typing import Any, Final, TextIO

import structlog

from coursegen_repair.security.redaction import REDACTED_VALUE, is_sensitive_key, redact_structure

LOG_FORMATS: Final[tuple[str, ...]] = ("json", "console")

# Payload-bearing keys are masked even though their names are not credentials.
_PAYLOAD_KEY_TERMS: Final[tuple[str, ...]] = (
    "raw_output_text",
    "prompt_text",
    "transcript",
)


def configure_logging(
    level: int | str = "INFO",
    fmt: str = "json",
    *,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the process; safe to call more than once."""

    level_no = _parse_log_level(level)
    if fmt not in LOG_FORMATS:
        raise ValueError(f"log format must be one of {', '.join(LOG_FORMATS)}; got {fmt!r}")

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_event,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


def redact_event(
    logger: object,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor: mask sensitive keys and scrub secret-like text."""

    del logger, method_name
    for key in list(event_dict):
        value = event_dict[key]
        if value is None:
            continue
        if _requires_redaction_for_key(key):
            event_dict[key] = REDACTED_VALUE
        elif isinstance(value, (str, Mapping, list, tuple)):
            event_dict[key] = redact_structure(value)
    return event_dict


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (generation id, course id, ...) for the duration of a block."""

    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return is_sensitive_key(key) or any(term in key_lower for term in _PAYLOAD_KEY_TERMS)


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, bool):
        raise ValueError("level must be int or str, got bool")
    if isinstance(value, int):
        return value

    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


__all__ = ["LOG_FORMATS", "configure_logging", "correlation_scope", "redact_event"]
