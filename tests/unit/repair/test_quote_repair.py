"""
coursegen-repair — unit tests for quote-aware JSON repair

File: tests/unit/repair/test_quote_repair.py
Last updated: 2026-02-11

Purpose
- Verify that unescaped straight and typographic quotes inside string literals are repaired
  without disturbing already-valid JSON.

What this test file should cover
- Terminator lookahead, escape passthrough, control characters.
- Round-trip property: broken literals parse back to their logical content.
"""

from __future__ import annotations

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from coursegen_repair.repair.quote_repair import loads_with_quote_repair, repair_json_quotes

# Characters that cannot make an embedded quote look like a literal terminator.
_LITERAL_ALPHABET = st.sampled_from(list('abcXYZ 09.!?\'é"„“”'))


def test_valid_json_is_unchanged() -> None:
    text = json.dumps({"a": "b", "n": [1, 2.5, None, True], "s": 'x \\ "y"'})

    assert repair_json_quotes(text) == text


def test_unescaped_straight_quotes_are_escaped() -> None:
    repaired = repair_json_quotes('{"title": "The "Limit" concept"}')

    assert repaired == '{"title": "The \\"Limit\\" concept"}'
    assert json.loads(repaired) == {"title": 'The "Limit" concept'}


def test_typographic_quotes_inside_literals_are_kept() -> None:
    parsed = loads_with_quote_repair('{"fact": "He said „hello“ twice"}')

    assert parsed == {"fact": "He said „hello“ twice"}


def test_typographic_quotes_outside_literals_open_and_close_strings() -> None:
    parsed = loads_with_quote_repair("{“title”: “Graphs”, “count”: 2}")

    assert parsed == {"title": "Graphs", "count": 2}


def test_existing_escapes_are_not_double_escaped() -> None:
    text = '{"a": "already \\"escaped\\" and "raw" quotes"}'

    assert json.loads(repair_json_quotes(text)) == {"a": 'already "escaped" and "raw" quotes'}


def test_raw_control_characters_inside_literals_are_escaped() -> None:
    parsed = loads_with_quote_repair('{"a": "line one\nline two\ttab\x01"}')

    assert parsed == {"a": "line one\nline two\ttab\x01"}


def test_quote_followed_by_terminator_after_whitespace_closes_literal() -> None:
    parsed = loads_with_quote_repair('["a "quoted"  , "b"]')

    assert parsed == ['a "quoted', "b"]


def test_unrepairable_text_raises_decode_error() -> None:
    with pytest.raises(json.JSONDecodeError):
        loads_with_quote_repair('{"a": ')


@settings(max_examples=200)
@given(literal=st.text(alphabet=_LITERAL_ALPHABET, max_size=40))
def test_round_trip_restores_logical_content(literal: str) -> None:
    broken = '{"title": "' + literal + '", "count": 1}'

    repaired = repair_json_quotes(broken)

    assert json.loads(repaired) == {"title": literal, "count": 1}
    assert loads_with_quote_repair(broken) == {"title": literal, "count": 1}
