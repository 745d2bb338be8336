"""Shared deterministic fixtures and builders for persistence tests."""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime, timedelta
from typing import Final

from coursegen_repair.domain import ids
from coursegen_repair.domain.models import GenerationOutcome, GenerationType
from coursegen_repair.persistence.repositories import GenerationLogRecord

_BASE_TS: Final[datetime] = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def fixed_now(seed: int) -> datetime:
    return _BASE_TS + timedelta(seconds=seed)


def _randbytes(seed: int):
    byte_value = (seed % 251) + 1

    def _provider(size: int) -> bytes:
        return bytes([byte_value]) * size

    return _provider


def _sha256(seed: str) -> str:
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


def make_generation_log(seed: int, **overrides: object) -> GenerationLogRecord:
    created_at = fixed_now(seed)
    fields: dict[str, object] = {
        "id": ids.generate_generation_log_id(
            timestamp_ms=int(created_at.timestamp() * 1000),
            randbytes=_randbytes(seed),
        ),
        "generation_type": GenerationType.LESSON,
        "schema_name": "lesson",
        "model_id": "claude-sonnet-4-5-20250929",
        "provider": "anthropic",
        "course_id": f"course-{seed % 2}",
        "outcome": GenerationOutcome.REPAIRED_LAYER1,
        "duration_ms": 100 + seed,
        "layer0_called": True,
        "layer0_result": "unwrapped-only",
        "layer1_called": True,
        "layer1_success": True,
        "layer1_had_wrapper": True,
        "wrapper_type": "object",
        "raw_output_text": f'{{"parameter": {{"title": "Lesson {seed}"}}}}',
        "raw_output_len": 38,
        "validation_errors": [{"path": ["count"], "code": "missing_field"}],
        "prompt_hash": _sha256(f"prompt-{seed}"),
        "prompt_text": f"Create lesson {seed}",
        "sensitive_text_expires_at": created_at + timedelta(hours=24),
        "language": "en",
        "difficulty": "beginner",
        "created_at": created_at,
    }
    fields.update(overrides)
    return GenerationLogRecord(**fields)  # type: ignore[arg-type]
