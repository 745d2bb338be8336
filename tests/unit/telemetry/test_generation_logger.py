"""
coursegen-repair — unit tests for the per-call generation logger

File: tests/unit/telemetry/test_generation_logger.py
Last updated: 2026-02-11

Purpose
- Validate outcome resolution, what gets stored for each outcome, and that finalize
  writes once and never raises.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from coursegen_repair.domain.models import GenerationOutcome, GenerationType
from coursegen_repair.persistence.repositories import GenerationLogRecord, GenerationLogRepo
from coursegen_repair.persistence.state_db import StateDB
from coursegen_repair.repair.tracker import RepairResult, RepairTracker
from coursegen_repair.repair.unwrap import WrapperType
from coursegen_repair.schema.validation import IssueCode, ValidationIssue
from coursegen_repair.telemetry.generation_logger import (
    UNKNOWN_PROVIDER,
    GenerationContext,
    GenerationLogger,
    truncate_raw_text,
)
from coursegen_repair.utils.hashing import sha256_text

from .. import FIXED_NOW, RecordingLogger, StepClock

PROMPT = "Create a lesson about photosynthesis."


def _context(model_id: str = "claude-sonnet-4-5-20250929") -> GenerationContext:
    return GenerationContext(
        generation_type=GenerationType.LESSON,
        schema_name="lesson",
        model_id=model_id,
        course_id="course-7",
        prompt_text=PROMPT,
    )


def _logger(repo: GenerationLogRepo | None = None, **kwargs: object) -> GenerationLogger:
    return GenerationLogger(
        _context(**kwargs),  # type: ignore[arg-type]
        repo,
        clock=StepClock(),
        logger=RecordingLogger(),
    )


def _tracker(result: RepairResult, *, raw: str, wrapper: WrapperType) -> RepairTracker:
    tracker = RepairTracker()
    tracker.record_layer0_input(raw, "invalid")
    tracker.repair_result = result
    tracker.wrapper_type = wrapper
    return tracker


def test_context_validation() -> None:
    context = GenerationContext(generation_type="quiz", schema_name="quiz", model_id="m")

    assert context.generation_type is GenerationType.QUIZ
    with pytest.raises(ValueError, match="schema_name"):
        GenerationContext(generation_type=GenerationType.QUIZ, schema_name=" ", model_id="m")
    with pytest.raises(ValueError):
        GenerationContext(generation_type="poem", schema_name="x", model_id="m")


def test_success_stores_only_prompt_hash() -> None:
    generation_logger = _logger()
    generation_logger.record_layer0(RepairTracker())

    record = generation_logger.finalize()

    assert record is not None
    assert record.outcome is GenerationOutcome.SUCCESS
    assert record.prompt_text is None
    assert record.prompt_hash == sha256_text(PROMPT)
    assert record.raw_output_text is None
    assert record.sensitive_text_expires_at is None
    assert record.duration_ms == 250
    assert record.created_at == FIXED_NOW + timedelta(milliseconds=250)
    assert record.provider == "anthropic"


def test_layer0_coercion_success() -> None:
    generation_logger = _logger()
    tracker = _tracker(
        RepairResult.COERCION_SUCCESS, raw='{"parameter": "{}"}', wrapper=WrapperType.STRINGIFIED
    )
    generation_logger.record_layer0(tracker)

    record = generation_logger.build_record()

    assert record.outcome is GenerationOutcome.REPAIRED_LAYER0
    assert record.layer0_called and record.layer0_result == "coercion-success"
    assert record.wrapper_type == "stringified"
    assert record.raw_output_text == '{"parameter": "{}"}'
    assert record.raw_output_len == len('{"parameter": "{}"}')
    assert record.prompt_text == PROMPT
    assert record.sensitive_text_expires_at == record.created_at + timedelta(hours=24)


@pytest.mark.parametrize(
    ("result", "expected"),
    [
        (RepairResult.UNWRAPPED_ONLY, GenerationOutcome.REPAIRED_LAYER0),
        (RepairResult.RETURNED_NULL, GenerationOutcome.FAILED),
        (RepairResult.JSON_PARSE_FAILED, GenerationOutcome.FAILED),
    ],
)
def test_layer0_only_outcomes(result: RepairResult, expected: GenerationOutcome) -> None:
    generation_logger = _logger()
    generation_logger.record_layer0(_tracker(result, raw="{}", wrapper=WrapperType.NONE))

    assert generation_logger.resolve_outcome() is expected


def test_layer1_success_prefers_layer1_text_and_wrapper() -> None:
    generation_logger = _logger()
    generation_logger.record_layer0(
        _tracker(RepairResult.UNWRAPPED_ONLY, raw="layer0 text", wrapper=WrapperType.NONE)
    )
    generation_logger.record_layer1(
        raw_text='{"parameter": {"title": "Leaves"}}',
        wrapper_type=WrapperType.OBJECT,
        success=True,
    )

    record = generation_logger.build_record()

    assert record.outcome is GenerationOutcome.REPAIRED_LAYER1
    assert record.raw_output_text == '{"parameter": {"title": "Leaves"}}'
    assert record.layer1_had_wrapper is True
    assert record.wrapper_type == "object"


def test_layer2_success_wins_over_everything() -> None:
    generation_logger = _logger()
    generation_logger.record_layer1(raw_text="{}", wrapper_type=WrapperType.NONE, success=False)
    generation_logger.record_layer2(model_id="claude-haiku-4-5-20251001", success=True)

    record = generation_logger.build_record()

    assert record.outcome is GenerationOutcome.REPAIRED_LAYER2
    assert record.layer2_model_id == "claude-haiku-4-5-20251001"


def test_failure_records_issues_and_error() -> None:
    issue = ValidationIssue(("count",), IssueCode.MISSING_FIELD, "required")
    generation_logger = _logger()
    generation_logger.record_layer1(
        raw_text='{"title": "X"}', wrapper_type=WrapperType.NONE, success=False, issues=(issue,)
    )
    generation_logger.record_layer2(model_id=None, success=False)
    generation_logger.record_failure("no object generated")

    record = generation_logger.build_record()

    assert record.outcome is GenerationOutcome.FAILED
    assert record.error_message == "no object generated"
    assert record.validation_errors == [
        {"path": ["count"], "code": "missing_field", "message": "required"}
    ]
    assert record.wrapper_type is None


def test_error_without_layers_is_failure() -> None:
    generation_logger = _logger(model_id="offline")
    generation_logger.record_failure("provider=anthropic code=auth")

    record = generation_logger.build_record()

    assert record.outcome is GenerationOutcome.FAILED
    assert record.provider == UNKNOWN_PROVIDER
    assert record.prompt_text == PROMPT


def test_finalize_writes_exactly_once(tmp_path: Path) -> None:
    repo = GenerationLogRepo(StateDB(tmp_path / "state.sqlite"))
    generation_logger = _logger(repo)

    first = generation_logger.finalize()
    second = generation_logger.finalize()

    assert first is not None
    assert second is None
    assert generation_logger.finalized
    assert repo.count() == 1
    assert repo.get(first.id) == first


def test_finalize_never_raises_on_persistence_errors() -> None:
    class _BrokenRepo:
        def add(self, record: GenerationLogRecord) -> GenerationLogRecord:
            raise OSError("disk full")

    logger = RecordingLogger()
    generation_logger = GenerationLogger(
        _context(),
        _BrokenRepo(),  # type: ignore[arg-type]
        clock=StepClock(),
        logger=logger,
    )

    assert generation_logger.finalize() is None
    assert logger.first("generation_log_write_failed")["error"] == "OSError: disk full"
    assert generation_logger.finalized


def test_truncate_raw_text() -> None:
    assert truncate_raw_text(None) is None
    assert truncate_raw_text("abc", limit=3) == "abc"
    assert truncate_raw_text("abcdef", limit=2) == "ab\n[TRUNCATED: 4 chars omitted]"
