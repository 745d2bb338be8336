"""
coursegen-repair — per-call generation logger

File: src/coursegen_repair/telemetry/generation_logger.py
Last updated: 2026-02-11

Purpose
- Collect what each repair layer did during one structured generation call and write a
  single ``generation_logs`` row when the call ends.

What should be included in this file
- ``GenerationContext``: caller-supplied identity of the call.
- ``GenerationLogger``: layer recorders, outcome resolution and ``finalize``.

Functional requirements
- ``finalize`` runs at most once and never raises; persistence errors are logged.
- Model output and prompt text are sanitized before they are stored; the prompt is
  stored only for non-success outcomes, otherwise only its hash.
- The expiry stamp is set only when some sensitive text is stored.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from coursegen_repair.constants import RAW_TEXT_MAX_CHARS
from coursegen_repair.domain.ids import generate_generation_log_id
from coursegen_repair.domain.models import GenerationOutcome, GenerationType, utc_now
from coursegen_repair.persistence.repositories import GenerationLogRecord, GenerationLogRepo
from coursegen_repair.providers.model_registry import provider_for_model
from coursegen_repair.repair.tracker import RepairResult, RepairTracker
from coursegen_repair.repair.unwrap import WrapperType
from coursegen_repair.schema.validation import ValidationIssue
from coursegen_repair.telemetry.retention import resolve_retention_hours, sensitive_text_expiry
from coursegen_repair.telemetry.sanitizer import (
    SanitizedText,
    prompt_hash,
    sanitize_prompt,
    sanitize_text,
)

UNKNOWN_PROVIDER = "unknown"


@dataclass(frozen=True, slots=True)
class GenerationContext:
    generation_type: GenerationType
    schema_name: str
    model_id: str
    user_id: str | None = None
    course_id: str | None = None
    lesson_id: str | None = None
    language: str | None = None
    difficulty: str | None = None
    prompt_text: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "generation_type", GenerationType(self.generation_type))
        for name in ("schema_name", "model_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"GenerationContext.{name} must be a non-empty string")


def truncate_raw_text(text: str | None, *, limit: int = RAW_TEXT_MAX_CHARS) -> str | None:
    if text is None or len(text) <= limit:
        return text
    omitted = len(text) - limit
    return f"{text[:limit]}\n[TRUNCATED: {omitted} chars omitted]"


class GenerationLogger:
    """Accumulates layer results for one call; ``finalize`` writes exactly one row."""

    def __init__(
        self,
        context: GenerationContext,
        repo: GenerationLogRepo | None,
        *,
        retention_hours: object = None,
        clock: Callable[[], datetime] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._context = context
        self._repo = repo
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._retention_hours = resolve_retention_hours(retention_hours, logger=self._logger)
        self._clock = clock if clock is not None else utc_now
        self._started_at = self._clock()
        self._finalized = False

        self._layer0_called = False
        self._layer0_result: RepairResult | None = None
        self._layer0_error: str | None = None
        self._layer0_raw_text: str | None = None
        self._layer0_raw_text_length = 0
        self._layer0_wrapper_type = WrapperType.NONE

        self._layer1_called = False
        self._layer1_success = False
        self._layer1_had_wrapper = False
        self._layer1_wrapper_type = WrapperType.NONE
        self._layer1_raw_text: str | None = None
        self._layer1_issues: tuple[ValidationIssue, ...] = ()

        self._layer2_called = False
        self._layer2_success = False
        self._layer2_model_id: str | None = None

        self._error_message: str | None = None

    @property
    def context(self) -> GenerationContext:
        return self._context

    @property
    def finalized(self) -> bool:
        return self._finalized

    def record_layer0(self, tracker: RepairTracker) -> None:
        """Copy Layer 0 state; harmless when the hook never ran."""

        self._layer0_called = tracker.layer0_called
        self._layer0_result = tracker.repair_result
        self._layer0_error = tracker.error
        self._layer0_raw_text = tracker.raw_text or None
        self._layer0_raw_text_length = tracker.raw_text_length
        self._layer0_wrapper_type = tracker.wrapper_type

    def record_layer1(
        self,
        *,
        raw_text: str,
        wrapper_type: WrapperType,
        success: bool,
        issues: tuple[ValidationIssue, ...] = (),
    ) -> None:
        self._layer1_called = True
        self._layer1_success = success
        self._layer1_wrapper_type = wrapper_type
        self._layer1_had_wrapper = wrapper_type is not WrapperType.NONE
        self._layer1_raw_text = raw_text
        self._layer1_issues = tuple(issues)

    def record_layer2(self, *, model_id: str | None, success: bool) -> None:
        self._layer2_called = True
        self._layer2_success = success
        self._layer2_model_id = model_id

    def record_failure(self, message: str) -> None:
        self._error_message = message

    def resolve_outcome(self) -> GenerationOutcome:
        if self._layer2_called and self._layer2_success:
            return GenerationOutcome.REPAIRED_LAYER2
        if self._layer1_called and self._layer1_success:
            return GenerationOutcome.REPAIRED_LAYER1
        if self._layer0_called and self._layer0_result is RepairResult.COERCION_SUCCESS:
            return GenerationOutcome.REPAIRED_LAYER0
        if self._layer1_called or self._layer2_called:
            return GenerationOutcome.FAILED
        if self._layer0_called and self._layer0_result is not None:
            # No later layer ran, so the re-validated unwrapped text was accepted.
            if self._layer0_result is RepairResult.UNWRAPPED_ONLY:
                return GenerationOutcome.REPAIRED_LAYER0
            return GenerationOutcome.FAILED
        if self._error_message:
            return GenerationOutcome.FAILED
        return GenerationOutcome.SUCCESS

    def build_record(self) -> GenerationLogRecord:
        """Assemble the sanitized row without writing it."""

        now = self._clock()
        outcome = self.resolve_outcome()
        duration_ms = max(0, int((now - self._started_at).total_seconds() * 1000))
        raw_text, raw_length = self._best_raw_text()

        raw = sanitize_text(raw_text, "rawOutput")
        prompt_text = self._context.prompt_text
        if outcome is GenerationOutcome.SUCCESS:
            prompt = SanitizedText(sanitized=None, redacted=False, hash=prompt_hash(prompt_text))
        else:
            prompt = sanitize_prompt(prompt_text)

        has_sensitive_payload = bool(raw.sanitized or prompt.sanitized)
        issues = self._layer1_issues
        return GenerationLogRecord(
            id=generate_generation_log_id(timestamp_ms=int(now.timestamp() * 1000)),
            generation_type=self._context.generation_type,
            schema_name=self._context.schema_name,
            model_id=self._context.model_id,
            provider=self._provider(),
            user_id=self._context.user_id,
            course_id=self._context.course_id,
            lesson_id=self._context.lesson_id,
            outcome=outcome,
            duration_ms=duration_ms,
            layer0_called=self._layer0_called,
            layer0_result=None if self._layer0_result is None else self._layer0_result.value,
            layer0_error=self._layer0_error,
            layer1_called=self._layer1_called,
            layer1_success=self._layer1_success,
            layer1_had_wrapper=self._layer1_had_wrapper,
            wrapper_type=self._best_wrapper_type(),
            layer2_called=self._layer2_called,
            layer2_success=self._layer2_success,
            layer2_model_id=self._layer2_model_id,
            raw_output_text=truncate_raw_text(raw.sanitized),
            raw_output_len=raw_length if raw_length > 0 else None,
            raw_output_redacted=raw.redacted,
            validation_errors=[issue.to_dict() for issue in issues] if issues else None,
            error_message=self._error_message,
            prompt_hash=prompt.hash,
            prompt_text=prompt.sanitized,
            prompt_redacted=prompt.redacted,
            sensitive_text_expires_at=(
                sensitive_text_expiry(now, self._retention_hours)
                if has_sensitive_payload
                else None
            ),
            language=self._context.language,
            difficulty=self._context.difficulty,
            created_at=now,
        )

    def finalize(self) -> GenerationLogRecord | None:
        """Write the row once; returns it, or ``None`` if already finalized or the write failed."""

        if self._finalized:
            return None
        self._finalized = True

        try:
            record = self.build_record()
            if self._repo is not None:
                self._repo.add(record)
        except Exception as exc:  # noqa: BLE001 - logging must never fail the generation call.
            self._logger.warning(
                "generation_log_write_failed",
                generation_type=self._context.generation_type.value,
                schema_name=self._context.schema_name,
                error=f"{type(exc).__name__}: {exc}",
            )
            return None

        self._logger.info(
            "generation_log_written",
            log_id=record.id,
            outcome=record.outcome.value,
            duration_ms=record.duration_ms,
            persisted=self._repo is not None,
        )
        return record

    def _best_raw_text(self) -> tuple[str | None, int]:
        if self._layer1_raw_text:
            return self._layer1_raw_text, len(self._layer1_raw_text)
        if self._layer0_raw_text:
            return self._layer0_raw_text, self._layer0_raw_text_length
        return None, 0

    def _best_wrapper_type(self) -> str | None:
        for wrapper_type in (self._layer1_wrapper_type, self._layer0_wrapper_type):
            if wrapper_type is not WrapperType.NONE:
                return wrapper_type.value
        return None

    def _provider(self) -> str:
        try:
            return provider_for_model(self._context.model_id).value
        except KeyError:
            return UNKNOWN_PROVIDER


__all__ = [
    "UNKNOWN_PROVIDER",
    "GenerationContext",
    "GenerationLogger",
    "truncate_raw_text",
]
