"""
coursegen-repair — secret redaction

File: src/coursegen_repair/security/redaction.py
Last updated: 2026-02-18

Purpose
- Scrub credentials from persisted generation logs, structured log events and config dumps.

Functional requirements
- Values under credential-like keys are masked whole; free text is masked span by span.
- Keys ending in ``_env`` name an environment variable and stay visible.
- Redaction is idempotent: the mask itself never matches a rule.

Non-functional requirements
- Prefer false positives over leaking a credential, but leave ordinary course prose alone.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

REDACTED_VALUE: Final[str] = "***REDACTED***"

# Matched against the snake_case form of a key, optionally behind a ``<prefix>_``.
_SENSITIVE_KEY: Final[re.Pattern[str]] = re.compile(
    r"(?:.+_)?(?:api_?key|(?:access|refresh|auth|bearer|session)_token|token"
    r"|client_secret|secret(?:_key)?|private_key|passw(?:or)?d|credentials?|authorization)"
)

# (rule name, pattern, group holding the secret; 0 masks the whole match)
_RULES: Final[tuple[tuple[str, re.Pattern[str], int], ...]] = (
    (
        "private_key_block",
        re.compile(
            r"-----BEGIN(?: [A-Z0-9]+)* PRIVATE KEY-----"
            r"[\s\S]+?-----END(?: [A-Z0-9]+)* PRIVATE KEY-----"
        ),
        0,
    ),
    (
        "authorization_bearer",
        re.compile(r"(?i)(\bauthorization\s*:\s*bearer\s+)([\w\-.~+/=]{8,})"),
        2,
    ),
    (
        "explicit_secret_assignment",
        re.compile(
            r"(?i)(\b(?:passw(?:or)?d|secret|api[_-]?key|client[_-]?secret"
            r"|(?:access|refresh)[_-]?token)\b\s*[:=]\s*[\"']?)([\w.~+/=-]{6,})"
        ),
        2,
    ),
    ("anthropic_api_key", re.compile(r"\bsk-ant-[\w-]{20,255}\b"), 0),
    ("openai_api_key", re.compile(r"\bsk-(?:proj-)?[\w-]{20,255}\b"), 0),
    ("google_api_key", re.compile(r"\bAIza[\w-]{35}\b"), 0),
    ("aws_access_key", re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b"), 0),
    ("github_token", re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,255}\b"), 0),
    ("jwt", re.compile(r"\beyJ[\w-]{8,}\.[\w-]{8,}\.[\w-]{8,}\b"), 0),
)


@dataclass(frozen=True, slots=True)
class SecretFinding:
    """Span of ``text`` that a rule considers secret."""

    rule: str
    start: int
    end: int


def scan_for_secrets(text: str) -> tuple[SecretFinding, ...]:
    """Every rule hit in ``text``, ordered by position."""

    _require_text(text)
    findings = [
        SecretFinding(name, *match.span(group))
        for name, pattern, group in _RULES
        for match in pattern.finditer(text)
    ]
    return tuple(sorted(findings, key=lambda item: (item.start, item.end, item.rule)))


def redact_text(text: str, *, replacement: str = REDACTED_VALUE) -> str:
    _require_text(text)
    for _, pattern, group in _RULES:
        text = pattern.sub(lambda match, g=group: _mask(match, g, replacement), text)
    return text


def is_sensitive_key(key: str) -> bool:
    """Whether values stored under ``key`` must never be shown."""

    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key.strip()).lower()
    name = re.sub(r"[^a-z0-9]+", "_", spaced).strip("_")
    if not name or name.endswith("_env"):
        return False
    return _SENSITIVE_KEY.fullmatch(name) is not None


def redact_structure(value: object, *, replacement: str = REDACTED_VALUE) -> object:
    """Deep copy of ``value`` with sensitive keys masked and strings scrubbed.

    Mapping keys come back sorted so redacted payloads hash deterministically.
    """

    if isinstance(value, str):
        return redact_text(value, replacement=replacement)
    if isinstance(value, Mapping):
        return {
            key: (
                replacement
                if isinstance(key, str) and value[key] is not None and is_sensitive_key(key)
                else redact_structure(value[key], replacement=replacement)
            )
            for key in sorted(value, key=str)
        }
    if isinstance(value, (list, tuple)):
        items = [redact_structure(item, replacement=replacement) for item in value]
        return items if isinstance(value, list) else tuple(items)
    return value


def _mask(match: re.Match[str], group: int, replacement: str) -> str:
    if group == 0:
        return replacement
    offset = match.start()
    whole = match.group()
    return whole[: match.start(group) - offset] + replacement + whole[match.end(group) - offset :]


def _require_text(text: object) -> None:
    if not isinstance(text, str):
        raise TypeError(f"text must be a string, got {type(text).__name__}")


__all__ = [
    "REDACTED_VALUE",
    "SecretFinding",
    "is_sensitive_key",
    "redact_structure",
    "redact_text",
    "scan_for_secrets",
]
