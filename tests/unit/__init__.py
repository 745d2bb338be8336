"""Shared test doubles for unit tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

FIXED_NOW = datetime(2026, 2, 11, 12, 0, 0, tzinfo=UTC)


@dataclass(slots=True)
class RecordingLogger:
    """structlog-compatible logger that keeps ``(level, event, fields)`` tuples."""

    events: list[tuple[str, str, dict[str, object]]] = field(default_factory=list)
    context: dict[str, object] = field(default_factory=dict)

    def bind(self, **fields: object) -> RecordingLogger:
        return RecordingLogger(events=self.events, context={**self.context, **fields})

    def debug(self, event: str, **fields: object) -> None:
        self._record("debug", event, fields)

    def info(self, event: str, **fields: object) -> None:
        self._record("info", event, fields)

    def warning(self, event: str, **fields: object) -> None:
        self._record("warning", event, fields)

    def error(self, event: str, **fields: object) -> None:
        self._record("error", event, fields)

    def names(self, level: str | None = None) -> list[str]:
        return [name for lvl, name, _ in self.events if level is None or lvl == level]

    def first(self, event: str) -> dict[str, object]:
        for _, name, fields in self.events:
            if name == event:
                return fields
        raise AssertionError(f"event {event!r} was not logged; got {self.names()}")

    def _record(self, level: str, event: str, fields: dict[str, object]) -> None:
        self.events.append((level, event, {**self.context, **fields}))


@dataclass(slots=True)
class StepClock:
    """Deterministic clock advancing by ``step`` on every call."""

    now: datetime = FIXED_NOW
    step: timedelta = timedelta(milliseconds=250)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current
