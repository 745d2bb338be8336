"""
coursegen-repair — public security utilities

File: src/coursegen_repair/security/__init__.py
Last updated: 2026-02-11

Purpose
- Consistent secret redaction for logs, persisted payloads and config output.
"""

from coursegen_repair.security.redaction import (
    REDACTED_VALUE,
    SecretFinding,
    is_sensitive_key,
    redact_structure,
    redact_text,
    scan_for_secrets,
)

__all__ = [
    "REDACTED_VALUE",
    "SecretFinding",
    "is_sensitive_key",
    "redact_structure",
    "redact_text",
    "scan_for_secrets",
]
