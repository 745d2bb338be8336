"""
coursegen-repair — unit tests for config schema validation

File: tests/unit/config/test_schema.py
Last updated: 2026-02-12

Purpose
- Validate strict config schema behavior, structured errors, merging, and redaction.

What this test file should cover
- Built-in defaults validate cleanly.
- Rejects unknown keys and invalid types with actionable paths.
- Rejects embedded secrets while accepting env-var references.
- Ensures redaction is recursive and non-destructive.

Functional requirements
- No network usage.

Non-functional requirements
- Deterministic and fast.
"""

from __future__ import annotations

from typing import Any

import pytest

from coursegen_repair.config.schema import (
    DEFAULT_CONFIG,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)


def _with(path: str, value: object) -> dict[str, Any]:
    config: dict[str, Any] = default_config()  # type: ignore[assignment]
    *parents, leaf = path.split(".")
    cursor = config
    for part in parents:
        cursor = cursor[part]
    cursor[leaf] = value
    return config


def _issue_paths(config: object) -> list[str]:
    return [issue.path for issue in validate_config(config).issues]


def test_defaults_validate_and_are_copied() -> None:
    result = validate_config(DEFAULT_CONFIG)

    assert result.is_valid
    assert result.config == DEFAULT_CONFIG

    mutated = default_config()
    mutated["repack"]["max_retries"] = 9
    assert DEFAULT_CONFIG["repack"]["max_retries"] == 0


@pytest.mark.parametrize(
    ("path", "value", "message"),
    [
        ("repair.debug_dumps", "true", "expected boolean"),
        ("repair.debug_dump_dir", "  ", "must not be empty"),
        ("repack.timeout_seconds", -1.0, "must be > 0"),
        ("repack.timeout_seconds", float("inf"), "must be finite"),
        ("repack.max_retries", -1, "must be >= 0"),
        ("repack.max_retries", True, "expected integer"),
        ("repack.model", "", "must not be empty"),
        ("paths.state_db", "a\x00b", "NUL bytes"),
        ("observability.log_level", "TRACE", "expected one of: DEBUG, ERROR, INFO, WARNING"),
        ("observability.log_format", "xml", "expected one of: console, json"),
        ("providers.openai.api_key_env", "openai-key", "must be an env var name"),
    ],
)
def test_invalid_values_report_field_paths(path: str, value: object, message: str) -> None:
    result = validate_config(_with(path, value))

    assert result.config is None
    assert not result.is_valid
    assert [issue.path for issue in result.issues] == [path]
    assert message in result.issues[0].message


def test_unknown_and_missing_keys_are_reported_in_order() -> None:
    config = _with("repack.backoff", 2)
    config["telemetry"] = {}
    del config["observability"]["log_level"]

    assert _issue_paths(config) == ["telemetry", "repack.backoff", "observability.log_level"]


def test_missing_section_and_non_object_root() -> None:
    config = default_config()
    del config["paths"]  # type: ignore[misc]

    assert _issue_paths(config) == ["paths"]
    assert _issue_paths(["not", "a", "mapping"]) == ["<root>"]
    assert _issue_paths(_with("repair", "on")) == ["repair"]
    assert _issue_paths(_with("repack", None)) == ["repack"]


def test_embedded_secrets_are_forbidden() -> None:
    result = validate_config(_with("providers.anthropic.api_key", "sk-ant-not-allowed"))

    assert result.issues == (
        ConfigValidationIssue(
            path="providers.anthropic.api_key",
            message="embedded secret values are forbidden; use an *_env key with an env var name",
        ),
    )


def test_retention_is_lenient_and_normalized() -> None:
    for raw, expected in [("12", 12.0), ("abc", 24.0), (-4, 24.0), (None, 24.0), (3, 3.0)]:
        normalized = assert_valid_config(_with("retention.sensitive_ttl_hours", raw))
        assert normalized["retention"]["sensitive_ttl_hours"] == expected


def test_optional_fields_default_to_none() -> None:
    config = default_config()
    del config["repack"]["model"]  # type: ignore[misc]
    del config["paths"]["schema_dir"]  # type: ignore[misc]

    normalized = assert_valid_config(config)

    assert normalized["repack"]["model"] is None
    assert normalized["paths"]["schema_dir"] is None
    assert assert_valid_config(_with("repack.model", " gpt-5-mini "))["repack"]["model"] == (
        "gpt-5-mini"
    )


def test_schema_version_mismatch_carries_guidance() -> None:
    with pytest.raises(ConfigValidationError, match="upgrade the coursegen-repair package"):
        assert_valid_config(_with("meta.schema_version", ConfigSchemaVersion + 1))
    with pytest.raises(ConfigValidationError, match="expected integer"):
        assert_valid_config(_with("meta.schema_version", "1"))

    assert "older than supported" in migration_guidance(0)
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"


def test_validation_error_renders_every_issue() -> None:
    config = _with("repack.max_retries", -1)
    config["observability"]["log_format"] = "xml"

    with pytest.raises(ConfigValidationError) as excinfo:
        assert_valid_config(config)

    rendered = str(excinfo.value)
    assert rendered.startswith("invalid config:\n")
    assert "- repack.max_retries: must be >= 0" in rendered
    assert "- observability.log_format: invalid value 'xml'" in rendered
    assert len(excinfo.value.issues) == 2


def test_merge_is_deep_and_leaves_inputs_untouched() -> None:
    base = default_config()
    overlay = {"repack": {"timeout_seconds": 5.0}, "extra": {"nested": [1, 2]}}

    merged = merge_config(base, overlay)

    assert merged["repack"]["timeout_seconds"] == 5.0
    assert merged["repack"]["enabled"] is True
    assert merged["extra"] == {"nested": [1, 2]}
    assert base["repack"]["timeout_seconds"] == 30.0
    merged["extra"]["nested"].append(3)
    assert overlay["extra"] == {"nested": [1, 2]}


def test_redaction_is_recursive_and_non_destructive() -> None:
    config = {
        "providers": {"anthropic": {"api_key_env": "ANTHROPIC_API_KEY"}},
        "custom": [{"client_secret": "hunter2", "name": "visible"}],
        "repack": {"model": None},
    }

    redacted = redact_config(config)

    assert redacted == {
        "custom": [{"client_secret": "<redacted>", "name": "visible"}],
        "providers": {"anthropic": {"api_key_env": "<redacted>"}},
        "repack": {"model": None},
    }
    assert config["providers"]["anthropic"]["api_key_env"] == "ANTHROPIC_API_KEY"
    assert redact_config("not a mapping") == {}
