"""
coursegen-repair — unit tests for the coercion engine

File: tests/unit/repair/test_coercion.py
Last updated: 2026-02-11

Purpose
- Validate schema-guided coercion: field stripping, defaults, embedded JSON, narrow scalar
  rules, enum fuzzy matching, strict vs best-effort arrays, and idempotence.
"""

from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from coursegen_repair.repair.coercion import (
    Coerced,
    coerce_to_schema,
    match_enum_value,
    try_coerce_and_validate,
)
from coursegen_repair.schema.descriptor import (
    BOOLEAN,
    INTEGER,
    NUMBER,
    STRING,
    ArraySchema,
    EnumSchema,
    FieldSpec,
    ObjectSchema,
    object_schema,
)
from coursegen_repair.schema.registry import SchemaRegistry

from .. import RecordingLogger

LEVEL = EnumSchema(("beginner", "intermediate", "advanced"))
LESSON = object_schema(
    {
        "title": STRING,
        "count": INTEGER,
        "score": NUMBER,
        "done": BOOLEAN,
        "level": LEVEL,
        "tags": ArraySchema(STRING),
    },
    {"note": STRING},
)

_lessons = st.fixed_dictionaries(
    {
        "title": st.text(max_size=20),
        "count": st.integers(min_value=-1000, max_value=1000),
        "score": st.floats(allow_nan=False, allow_infinity=False, width=32),
        "done": st.booleans(),
        "level": st.sampled_from(LEVEL.allowed_values),
        "tags": st.lists(st.text(max_size=8), max_size=4),
    },
    optional={"note": st.text(max_size=20)},
)

_messy_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-50, max_value=50),
    st.sampled_from(["3", "2.5", "true", "FALSE", " Beginner ", "advancd", "[]", '["a"]', ""]),
)


@given(value=_lessons)
def test_coercion_of_valid_input_is_identity_and_idempotent(value: dict[str, object]) -> None:
    first = coerce_to_schema(value, LESSON)

    assert first == Coerced(value)
    assert coerce_to_schema(first.value, LESSON) == first


@given(
    value=st.fixed_dictionaries(
        {name: _messy_scalars for name in ("title", "count", "score", "done", "level", "tags")}
    )
)
def test_coercion_is_idempotent_on_messy_input(value: dict[str, object]) -> None:
    first = coerce_to_schema(value, LESSON)
    if first is None:
        return

    assert coerce_to_schema(first.value, LESSON) == first


def test_unknown_field_is_stripped() -> None:
    schema = object_schema({"title": STRING})

    result = coerce_to_schema({"title": "Sets", "unexpected": 1}, schema)

    assert result == Coerced({"title": "Sets"})


def test_missing_required_field_fails() -> None:
    schema = object_schema({"title": STRING, "count": NUMBER})

    assert coerce_to_schema({"title": "Sets"}, schema) is None


def test_null_optional_field_is_omitted() -> None:
    schema = object_schema({"title": STRING}, {"subtitle": STRING})

    assert coerce_to_schema({"title": "A", "subtitle": None}, schema) == Coerced({"title": "A"})


def test_declared_default_fills_missing_required_field() -> None:
    schema = ObjectSchema(
        {
            "questions": FieldSpec(ArraySchema(STRING)),
            "prerequisites": FieldSpec(ArraySchema(STRING), default=[]),
        }
    )

    first = coerce_to_schema({"questions": ["q1"]}, schema)
    second = coerce_to_schema({"questions": ["q2"]}, schema)

    assert first == Coerced({"questions": ["q1"], "prerequisites": []})
    assert first is not None and second is not None
    assert first.value["prerequisites"] is not second.value["prerequisites"]  # type: ignore[index]


def test_embedded_json_strings_are_parsed_for_containers() -> None:
    schema = object_schema(
        {"lesson": object_schema({"title": STRING}), "tags": ArraySchema(STRING)}
    )

    result = coerce_to_schema(
        {"lesson": '{"title": "Vectors"}', "tags": '["a", "b"]'},
        schema,
    )

    assert result == Coerced({"lesson": {"title": "Vectors"}, "tags": ["a", "b"]})


@pytest.mark.parametrize(
    ("value", "schema", "expected"),
    [
        ("3", INTEGER, Coerced(3)),
        ("3.0", INTEGER, Coerced(3)),
        (" 2.5 ", NUMBER, Coerced(2.5)),
        ("1e3", NUMBER, Coerced(1000.0)),
        ("TRUE", BOOLEAN, Coerced(True)),
        ("false", BOOLEAN, Coerced(False)),
        (7, STRING, Coerced("7")),
        (True, STRING, Coerced("true")),
        ({"a": [1, 2]}, STRING, Coerced('{"a":[1,2]}')),
        ("3.5", INTEGER, None),
        ("yes", BOOLEAN, None),
        (1, BOOLEAN, None),
        (True, NUMBER, None),
        ("nan", NUMBER, None),
        (None, STRING, None),
    ],
)
def test_narrow_scalar_rules(value: object, schema: object, expected: object) -> None:
    assert coerce_to_schema(value, schema) == expected  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("beginner", "beginner"),
        ("Beginner", "beginner"),
        ("  ADVANCED  ", "advanced"),
        ("intermediat", "intermediate"),
        ("beginer", "beginner"),
        ("expert", None),
        ("", None),
    ],
)
def test_enum_fuzzy_matching(value: str, expected: str | None) -> None:
    assert match_enum_value(value, LEVEL.allowed_values) == expected


def test_enum_separator_normalization_and_ties() -> None:
    assert match_enum_value("mind blowing", ("mind-blowing", "cool", "neat")) == "mind-blowing"
    assert match_enum_value("weakness_focused", ("weakness-focused", "deeper")) == (
        "weakness-focused"
    )
    assert match_enum_value("abcdz", ("abcdx", "abcdy")) is None


def test_enum_threshold_is_tunable() -> None:
    assert match_enum_value("advnced", LEVEL.allowed_values) == "advanced"
    assert match_enum_value("advnced", LEVEL.allowed_values, threshold=0.1) is None


def test_strict_array_fails_on_bad_element_and_best_effort_drops_it() -> None:
    slide = object_schema({"title": STRING})
    values = [{"title": "one"}, {"nope": 1}, {"title": "three"}]

    assert coerce_to_schema(values, ArraySchema(slide)) is None
    assert coerce_to_schema(values, ArraySchema(slide, best_effort=True)) == Coerced(
        [{"title": "one"}, {"title": "three"}]
    )


def test_try_coerce_and_validate_reports_issues_after_coercion() -> None:
    logger = RecordingLogger()
    schema = object_schema({"tags": ArraySchema(STRING, min_items=2)})

    outcome = try_coerce_and_validate({"tags": ["only"]}, schema, logger=logger)

    assert not outcome.ok
    assert outcome.value is None
    assert [issue.dotted_path for issue in outcome.issues] == ["tags"]
    assert logger.names() == ["coercion_validation_failed", "coercion_validation_issue"]


def test_try_coerce_and_validate_success() -> None:
    logger = RecordingLogger()

    outcome = try_coerce_and_validate(
        {"title": 5, "x": 1}, object_schema({"title": STRING}), logger=logger
    )

    assert outcome.ok
    assert outcome.value == {"title": "5"}
    assert logger.events == []


def test_coercion_never_raises_on_deep_nesting() -> None:
    nested: object = "leaf"
    for _ in range(5000):
        nested = [nested]

    assert coerce_to_schema(nested, ArraySchema(STRING)) is None


def test_lesson_with_stringified_sections_is_coerced_and_validated() -> None:
    lesson = SchemaRegistry.load_builtin().get("lesson")
    sections = [
        {"type": "Text", "content": "Vectors have *magnitude*."},
        {"type": "code block", "language": "python", "code": "print(1)", "explanation": None},
        {"type": "visualization", "vizType": "function plot", "spec": {"xRange": ["-1", 1]}},
    ]
    payload = {
        "title": "Vectors",
        "summary": "Intro",
        "learningObjectives": ["Add vectors"],
        "sections": json.dumps(sections),
        "workedExamples": [],
        "practiceExercises": [
            {
                "id": "ex1",
                "problemStatement": "Add (1, 2) and (3, 4).",
                "hints": "[\"Add componentwise\"]",
                "solution": "(4, 6)",
                "answerType": "Numeric",
            }
        ],
        "keyTakeaways": ["Componentwise addition"],
        "unexpected": True,
    }

    outcome = try_coerce_and_validate(payload, lesson, logger=RecordingLogger())

    assert outcome.ok
    assert isinstance(outcome.value, dict)
    assert "unexpected" not in outcome.value
    assert outcome.value["sections"] == [
        {"type": "text", "content": "Vectors have *magnitude*."},
        {"type": "code_block", "language": "python", "code": "print(1)"},
        {"type": "visualization", "vizType": "function_plot", "spec": {"xRange": [-1.0, 1]}},
    ]
    exercise = outcome.value["practiceExercises"][0]
    assert exercise["hints"] == ["Add componentwise"]
    assert exercise["answerType"] == "numeric"
