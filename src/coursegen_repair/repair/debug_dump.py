"""Opt-in local sink for Layer 0 raw text, one timestamped file per attempt."""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from coursegen_repair.utils.fs import atomic_write_text

_FILENAME_UNSAFE: Final[re.Pattern[str]] = re.compile(r"[:.]")


class DebugDumpSink:
    """Writes ``repair-<timestamp>.json`` files when enabled; a no-op otherwise."""

    __slots__ = ("_clock", "_directory", "_enabled", "_logger")

    def __init__(
        self,
        directory: str | Path,
        *,
        enabled: bool = False,
        clock: Callable[[], datetime] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._directory = Path(directory).expanduser()
        self._enabled = bool(enabled)
        self._clock = clock if clock is not None else _utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def disabled(cls) -> DebugDumpSink:
        return cls(Path("."), enabled=False)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def directory(self) -> Path:
        return self._directory

    def write(self, text: str) -> Path | None:
        """Persist ``text``; returns the written path, or ``None`` when disabled or failed."""

        if not self._enabled:
            return None

        moment = self._clock().astimezone(UTC).isoformat(timespec="microseconds")
        stamp = _FILENAME_UNSAFE.sub("-", moment.replace("+00:00", "Z"))
        path = self._directory / f"repair-{stamp}.json"
        try:
            path = atomic_write_text(self._unused_path(f"repair-{stamp}"), text)
        except OSError as exc:
            self._logger.warning("debug_dump_write_failed", path=str(path), error=str(exc))
            return None
        self._logger.debug("debug_dump_written", path=str(path), chars=len(text))
        return path

    def _unused_path(self, stem: str) -> Path:
        # Attempts sharing a timestamp get -1, -2, ... instead of replacing each other.
        path = self._directory / f"{stem}.json"
        counter = 0
        while path.exists():
            counter += 1
            path = self._directory / f"{stem}-{counter}.json"
        return path


def _utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["DebugDumpSink"]
