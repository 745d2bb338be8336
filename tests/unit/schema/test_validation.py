"""Strict validation: every issue is reported with a structured path and code."""

from __future__ import annotations

from coursegen_repair.schema.descriptor import (
    BOOLEAN,
    INTEGER,
    NUMBER,
    STRING,
    ArraySchema,
    EnumSchema,
    object_schema,
)
from coursegen_repair.schema.validation import (
    IssueCode,
    ValidationIssue,
    format_issues,
    is_valid,
    validate_value,
)

LESSON = object_schema(
    {
        "title": STRING,
        "minutes": INTEGER,
        "difficulty": EnumSchema(("easy", "medium", "hard")),
        "tags": ArraySchema(STRING, min_items=1),
    },
    {"published": BOOLEAN},
)


def test_valid_value_has_no_issues() -> None:
    value = {"title": "Limits", "minutes": 20, "difficulty": "easy", "tags": ["calc"]}

    assert validate_value(value, LESSON) == ()
    assert is_valid(value, LESSON)


def test_optional_field_may_be_null() -> None:
    value = {
        "title": "Limits",
        "minutes": 20,
        "difficulty": "easy",
        "tags": ["calc"],
        "published": None,
    }

    assert is_valid(value, LESSON)


def test_every_issue_is_collected_with_paths() -> None:
    value = {"title": 3, "difficulty": "Easy", "tags": [], "bonus": 1}

    issues = validate_value(value, LESSON)

    assert [(issue.dotted_path, issue.code) for issue in issues] == [
        ("title", IssueCode.INVALID_TYPE),
        ("minutes", IssueCode.MISSING_FIELD),
        ("difficulty", IssueCode.INVALID_ENUM_VALUE),
        ("tags", IssueCode.TOO_SMALL),
        ("<root>", IssueCode.UNRECOGNIZED_KEYS),
    ]


def test_nested_array_paths_render_with_indices() -> None:
    schema = object_schema({"items": ArraySchema(object_schema({"score": NUMBER}))})

    issues = validate_value({"items": [{"score": 1.5}, {"score": "high"}]}, schema)

    assert len(issues) == 1
    assert issues[0].path == ("items", 1, "score")
    assert issues[0].dotted_path == "items[1].score"


def test_integer_accepts_integral_floats_but_not_booleans() -> None:
    assert is_valid(3.0, INTEGER)
    assert not is_valid(3.5, INTEGER)
    assert not is_valid(True, INTEGER)
    assert not is_valid(float("nan"), NUMBER)


def test_issue_serialization_and_formatting() -> None:
    issue = ValidationIssue(("questions", 0), IssueCode.MISSING_FIELD, "required")

    assert issue.to_dict() == {
        "path": ["questions", 0],
        "code": "missing_field",
        "message": "required",
    }
    assert format_issues((issue,)) == "- questions[0]: required (missing_field)"
    assert format_issues(()) == "no validation issues"
