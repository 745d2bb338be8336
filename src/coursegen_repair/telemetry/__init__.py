"""
coursegen-repair — generation telemetry

File: src/coursegen_repair/telemetry/__init__.py
Last updated: 2026-02-11

Purpose
- Per-call generation logging, payload sanitization and sensitive-text retention.
"""

from coursegen_repair.telemetry.generation_logger import (
    UNKNOWN_PROVIDER,
    GenerationContext,
    GenerationLogger,
    truncate_raw_text,
)
from coursegen_repair.telemetry.retention import (
    GenerationLogPage,
    cleanup_expired_payloads,
    list_generation_logs,
    resolve_retention_hours,
    sensitive_text_expiry,
)
from coursegen_repair.telemetry.sanitizer import (
    SanitizedText,
    prompt_hash,
    redaction_marker,
    sanitize_prompt,
    sanitize_text,
)

__all__ = [
    "UNKNOWN_PROVIDER",
    "GenerationContext",
    "GenerationLogPage",
    "GenerationLogger",
    "SanitizedText",
    "cleanup_expired_payloads",
    "list_generation_logs",
    "prompt_hash",
    "redaction_marker",
    "resolve_retention_hours",
    "sanitize_prompt",
    "sanitize_text",
    "sensitive_text_expiry",
    "truncate_raw_text",
]
