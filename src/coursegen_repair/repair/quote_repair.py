"""
coursegen-repair — quote-aware JSON string repair

File: src/coursegen_repair/repair/quote_repair.py
Last updated: 2026-02-11

Purpose
- Repair JSON-looking text whose string literals contain unescaped straight quotes or
  typographic quote glyphs, so that a strict JSON parse succeeds.

Functional requirements
- Single left-to-right pass; no backtracking; bounded by input length.
- Inside a string, a quote glyph terminates the literal only when the next
  non-whitespace character is one of ``: , } ]`` or the end of input.
- Straight quotes that do not terminate are emitted as ``\\"``. Typographic glyphs
  that do not terminate are kept verbatim (they are already valid string content).
- Existing escape sequences are copied untouched, so ``\\"`` is never double-escaped.
- Raw control characters inside string literals are escaped.
- Outside strings, any quote glyph opens a literal and is normalized to ``"``.
"""

from __future__ import annotations

import json
from typing import Final

_STRAIGHT_QUOTE: Final[str] = '"'
_TYPOGRAPHIC_QUOTES: Final[frozenset[str]] = frozenset({"„", "“", "”"})
_QUOTE_GLYPHS: Final[frozenset[str]] = _TYPOGRAPHIC_QUOTES | {_STRAIGHT_QUOTE}
_TERMINATOR_FOLLOWERS: Final[frozenset[str]] = frozenset({":", ",", "}", "]"})
_CONTROL_ESCAPES: Final[dict[str, str]] = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def repair_json_quotes(text: str) -> str:
    """Return ``text`` with string-literal quoting repaired; never raises for str input."""

    out: list[str] = []
    in_string = False
    index = 0
    length = len(text)

    while index < length:
        char = text[index]

        if not in_string:
            if char in _QUOTE_GLYPHS:
                out.append(_STRAIGHT_QUOTE)
                in_string = True
            else:
                out.append(char)
            index += 1
            continue

        if char == "\\":
            out.append(char)
            if index + 1 < length:
                out.append(text[index + 1])
            index += 2
            continue

        if char in _QUOTE_GLYPHS:
            if _closes_literal(text, index + 1):
                out.append(_STRAIGHT_QUOTE)
                in_string = False
            elif char == _STRAIGHT_QUOTE:
                out.append('\\"')
            else:
                out.append(char)
            index += 1
            continue

        escaped = _CONTROL_ESCAPES.get(char)
        if escaped is not None:
            out.append(escaped)
        elif ord(char) < 0x20:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
        index += 1

    return "".join(out)


def loads_with_quote_repair(text: str) -> object:
    """Parse ``text`` as JSON, retrying once on the quote-repaired text.

    Raises ``json.JSONDecodeError`` from the repaired attempt when both fail.
    """

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return json.loads(repair_json_quotes(text))


def _closes_literal(text: str, start: int) -> bool:
    index = start
    length = len(text)
    while index < length and text[index].isspace():
        index += 1
    return index >= length or text[index] in _TERMINATOR_FOLLOWERS


__all__ = ["loads_with_quote_repair", "repair_json_quotes"]
