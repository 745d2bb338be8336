"""Envelope detection for ``{"parameter": ...}`` tool-call responses."""

from __future__ import annotations

import json

import pytest

from coursegen_repair.repair.unwrap import WrapperType, unwrap_parameter


def test_object_payload_is_returned_unchanged() -> None:
    payload = {"title": "X", "count": 3}

    result = unwrap_parameter({"parameter": payload})

    assert result.value is payload
    assert result.wrapper_type is WrapperType.OBJECT
    assert result.had_wrapper


def test_stringified_payload_is_parsed() -> None:
    inner = {"title": "X", "count": 3}

    result = unwrap_parameter({"parameter": json.dumps(inner)})

    assert result.value == inner
    assert result.wrapper_type is WrapperType.STRINGIFIED


def test_stringified_payload_with_broken_quotes_is_repaired() -> None:
    result = unwrap_parameter({"parameter": '{"title": "the "best" course"}'})

    assert result.value == {"title": 'the "best" course'}
    assert result.wrapper_type is WrapperType.STRINGIFIED


@pytest.mark.parametrize(
    "value",
    [
        {"title": "X"},
        {"parameter": {"a": 1}, "other": True},
        {"parameter": 42},
        {"parameter": "not json at all {"},
        ["parameter"],
        "plain text",
        None,
    ],
)
def test_non_envelopes_are_returned_untouched(value: object) -> None:
    result = unwrap_parameter(value)

    assert result.value is value
    assert result.wrapper_type is WrapperType.NONE
    assert not result.had_wrapper


def test_custom_marker_key() -> None:
    result = unwrap_parameter({"input": {"a": 1}}, marker="input")

    assert result.value == {"a": 1}
    assert result.wrapper_type is WrapperType.OBJECT
