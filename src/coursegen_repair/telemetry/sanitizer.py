"""
coursegen-repair — persistence sanitizer for generation log payloads

File: src/coursegen_repair/telemetry/sanitizer.py
Last updated: 2026-02-11

Purpose
- Bound what a generation log stores about model output and prompts.

Functional requirements
- Secret-like substrings are scrubbed before anything else.
- Short text is kept inline; long text becomes a hash marker.
- Prompt user blocks (course context document, weak-areas feedback) are always replaced
  by markers; an over-long prompt collapses to a single marker.
- ``hash`` is always the SHA-256 of the caller's original text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from coursegen_repair.constants import INLINE_MAX_CHARS, LONG_BLOCK_MIN_CHARS
from coursegen_repair.security.redaction import redact_text
from coursegen_repair.utils.hashing import sha256_text

_NEXT_SECTION: Final[str] = r"(\n\n[A-Z][A-Z _-]+:|\Z)"
_CONTEXT_DOC_BLOCK: Final[re.Pattern[str]] = re.compile(
    r"(COURSE CONTEXT DOCUMENT:\n)([\s\S]*?)" + _NEXT_SECTION,
    re.IGNORECASE,
)
_FEEDBACK_BLOCK: Final[re.Pattern[str]] = re.compile(
    r"(IMPORTANT - WEAK AREAS FEEDBACK:\n)([\s\S]*?)" + _NEXT_SECTION,
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class SanitizedText:
    sanitized: str | None
    redacted: bool
    hash: str | None

    @classmethod
    def empty(cls) -> SanitizedText:
        return cls(sanitized=None, redacted=False, hash=None)


def redaction_marker(label: str, value: str) -> str:
    return f"[REDACTED:{label}:sha256={sha256_text(value)}:chars={len(value)}]"


def sanitize_text(value: str | None, label: str) -> SanitizedText:
    """Keep text inline up to ``INLINE_MAX_CHARS``; otherwise store only a marker."""

    if not value:
        return SanitizedText.empty()

    digest = sha256_text(value)
    scrubbed = redact_text(value)
    if len(scrubbed) <= INLINE_MAX_CHARS:
        return SanitizedText(sanitized=scrubbed, redacted=scrubbed != value, hash=digest)
    return SanitizedText(sanitized=redaction_marker(label, scrubbed), redacted=True, hash=digest)


def sanitize_prompt(prompt: str | None) -> SanitizedText:
    """Replace user-supplied prompt blocks with markers; collapse long prompts."""

    if not prompt:
        return SanitizedText.empty()

    output = redact_text(prompt)
    redacted = output != prompt

    output, context_hits = _CONTEXT_DOC_BLOCK.subn(
        lambda match: match.group(1)
        + redaction_marker("contextDoc", match.group(2))
        + match.group(3),
        output,
    )
    output, feedback_hits = _FEEDBACK_BLOCK.subn(
        lambda match: match.group(1)
        + redaction_marker("userFeedback", match.group(2))
        + match.group(3),
        output,
    )
    redacted = redacted or context_hits > 0 or feedback_hits > 0

    if len(output) > LONG_BLOCK_MIN_CHARS:
        output = redaction_marker("prompt", output)
        redacted = True

    return SanitizedText(sanitized=output, redacted=redacted, hash=sha256_text(prompt))


def prompt_hash(prompt: str | None) -> str | None:
    return sha256_text(prompt) if prompt else None


__all__ = [
    "SanitizedText",
    "prompt_hash",
    "redaction_marker",
    "sanitize_prompt",
    "sanitize_text",
]
