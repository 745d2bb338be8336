"""
coursegen-repair — Layer 0 inline repair hook

File: src/coursegen_repair/repair/hook.py
Last updated: 2026-02-11

Purpose
- Repair callback invoked by the structured-output call when the provider's first
  response does not validate.

Functional requirements
- Contract: ``hook(text, error) -> str | None``; a returned string is re-validated by the caller.
- Tracker layer-0 fields are updated on every invocation before returning.
- Flow: record input, optional debug dump, parse (with quote repair), unwrap, coerce+validate.
- ``unwrapped-only`` still returns the unwrapped JSON so the next validation error
  describes the real content instead of the envelope.

Non-functional requirements
- Never raises; failures are classified onto the tracker.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any, Final

import structlog

from coursegen_repair.repair.coercion import try_coerce_and_validate
from coursegen_repair.repair.debug_dump import DebugDumpSink
from coursegen_repair.repair.quote_repair import loads_with_quote_repair
from coursegen_repair.repair.tracker import RepairResult, RepairTracker
from coursegen_repair.repair.unwrap import unwrap_parameter
from coursegen_repair.schema.descriptor import SchemaDescriptor
from coursegen_repair.schema.validation import ValidationIssue, format_issues

_PREVIEW_CHARS: Final[int] = 200


class RepairHook:
    """Callable Layer 0 repair bound to one schema and one tracker."""

    __slots__ = ("_dump_sink", "_logger", "_schema", "_tracker")

    def __init__(
        self,
        schema: SchemaDescriptor,
        tracker: RepairTracker,
        *,
        dump_sink: DebugDumpSink | None = None,
        logger: Any | None = None,
    ) -> None:
        self._schema = schema
        self._tracker = tracker
        self._dump_sink = dump_sink if dump_sink is not None else DebugDumpSink.disabled()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def tracker(self) -> RepairTracker:
        return self._tracker

    @property
    def schema(self) -> SchemaDescriptor:
        return self._schema

    def __call__(self, text: str, error: object = None) -> str | None:
        tracker = self._tracker
        error_message = describe_error(error)
        tracker.record_layer0_input(text, error_message)
        self._logger.info(
            "repair_layer0_attempt",
            raw_text_length=len(text),
            preview=text[:_PREVIEW_CHARS],
            error=error_message,
        )
        self._dump_sink.write(text)

        try:
            parsed = loads_with_quote_repair(text)
        except (json.JSONDecodeError, RecursionError) as exc:
            return self._finish(RepairResult.JSON_PARSE_FAILED, None, error=str(exc))

        try:
            unwrapped = unwrap_parameter(parsed)
            tracker.wrapper_type = unwrapped.wrapper_type
            outcome = try_coerce_and_validate(unwrapped.value, self._schema, logger=self._logger)
            if outcome.ok:
                return self._finish(RepairResult.COERCION_SUCCESS, _dumps(outcome.value))
            if unwrapped.had_wrapper:
                return self._finish(RepairResult.UNWRAPPED_ONLY, _dumps(unwrapped.value))
        except Exception as exc:  # noqa: BLE001 - repair hook boundary must not raise.
            detail = f"{type(exc).__name__}: {exc}"
            return self._finish(RepairResult.RETURNED_NULL, None, error=detail)
        return self._finish(RepairResult.RETURNED_NULL, None)

    def _finish(
        self,
        result: RepairResult,
        output: str | None,
        *,
        error: str | None = None,
    ) -> str | None:
        self._tracker.repair_result = result
        if error is not None:
            self._tracker.error = error
        self._logger.info(
            "repair_layer0_result",
            result=result.value,
            wrapper_type=self._tracker.wrapper_type.value,
            returned_chars=None if output is None else len(output),
            error=error,
        )
        return output


def describe_error(error: object) -> str | None:
    """Render a validation error of any shape as a single message."""

    if error is None:
        return None
    if isinstance(error, BaseException):
        return str(error).strip() or type(error).__name__
    if isinstance(error, Sequence) and not isinstance(error, str):
        issues = tuple(item for item in error if isinstance(item, ValidationIssue))
        if issues and len(issues) == len(error):
            return format_issues(issues)
    return str(error)


def _dumps(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


__all__ = ["RepairHook", "describe_error"]
