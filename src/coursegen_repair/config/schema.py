"""
coursegen-repair — configuration defaults and validation

File: src/coursegen_repair/config/schema.py
Last updated: 2026-02-18

Purpose
- Own the built-in defaults and the strict shape every effective config must have.

What should be included in this file
- One declarative field table; a single walker reports every problem with its dotted path.
- Deep-merge and redaction helpers used by the loader and the ``config`` command.

Functional requirements
- Unknown keys are rejected. A key that looks like a secret is rejected with a message
  pointing at the ``*_env`` indirection instead.
- ``retention.sensitive_ttl_hours`` is the one lenient field: invalid values fall back
  to the default with a logged warning instead of failing validation.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from coursegen_repair.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_DEBUG_DUMP_DIR,
    DEFAULT_REPACK_TIMEOUT_SECONDS,
    DEFAULT_RETENTION_HOURS,
    DEFAULT_STATE_DB_PATH,
)
from coursegen_repair.observability.logging import LOG_FORMATS
from coursegen_repair.security.redaction import is_sensitive_key
from coursegen_repair.telemetry.retention import resolve_retention_hours

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
PROVIDER_NAMES: Final[tuple[str, ...]] = ("anthropic", "google", "openai")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_REDACTED: Final[str] = "<redacted>"

# Resolved against the config file's directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "state_db"),
    ("paths", "schema_dir"),
    ("repair", "debug_dump_dir"),
)

# Fields whose default is ``None``; TOML cannot spell null, so absence means unset.
OPTIONAL_FIELDS: Final[tuple[tuple[tuple[str, ...], Literal["str"]], ...]] = (
    (("repack", "model"), "str"),
    (("paths", "schema_dir"), "str"),
)

RETENTION_HOURS_PATH: Final[tuple[str, ...]] = ("retention", "sensitive_ttl_hours")


class MetaConfig(TypedDict):
    schema_version: int


class ProviderSettings(TypedDict):
    api_key_env: str


class ProvidersConfig(TypedDict):
    anthropic: ProviderSettings
    openai: ProviderSettings
    google: ProviderSettings


class RepairConfig(TypedDict):
    debug_dumps: bool
    debug_dump_dir: str


class RepackConfig(TypedDict):
    enabled: bool
    timeout_seconds: float
    max_retries: int
    model: str | None


class RetentionConfig(TypedDict):
    sensitive_ttl_hours: float


class PathsConfig(TypedDict):
    state_db: str
    schema_dir: str | None


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "console"]


class RepairServiceConfig(TypedDict):
    meta: MetaConfig
    providers: ProvidersConfig
    repair: RepairConfig
    repack: RepackConfig
    retention: RetentionConfig
    paths: PathsConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[RepairServiceConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "providers": {
        "anthropic": {"api_key_env": "ANTHROPIC_API_KEY"},
        "openai": {"api_key_env": "OPENAI_API_KEY"},
        "google": {"api_key_env": "GOOGLE_AI_API_KEY"},
    },
    "repair": {"debug_dumps": False, "debug_dump_dir": str(DEFAULT_DEBUG_DUMP_DIR)},
    "repack": {
        "enabled": True,
        "timeout_seconds": DEFAULT_REPACK_TIMEOUT_SECONDS,
        "max_retries": 0,
        "model": None,
    },
    "retention": {"sensitive_ttl_hours": float(DEFAULT_RETENTION_HOURS)},
    "paths": {"state_db": str(DEFAULT_STATE_DB_PATH), "schema_dir": None},
    "observability": {"log_level": "INFO", "log_format": "json"},
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """``config`` is the normalized payload, or ``None`` when any issue was found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Every issue from one validation pass, one ``- path: message`` line each."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {item.path}: {item.message}" for item in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


class _Invalid(ValueError):
    pass


_Rule = Callable[[object], object]


@dataclass(frozen=True, slots=True)
class _Field:
    """A leaf ``rule`` or a nested ``shape``; optional leaves see ``None`` when absent."""

    rule: _Rule | None = None
    shape: Mapping[str, _Field] | None = None
    required: bool = True


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {type(value).__name__}")
    stripped = value.strip()
    if not stripped:
        raise _Invalid("must not be empty")
    return stripped


def _optional_text(value: object) -> str | None:
    return None if value is None else _text(value)


def _path_text(value: object) -> str:
    text = _text(value)
    if "\x00" in text:
        raise _Invalid("must not contain NUL bytes")
    return text


def _optional_path_text(value: object) -> str | None:
    return None if value is None else _path_text(value)


def _env_name(value: object) -> str:
    text = _text(value)
    if not _ENV_NAME_PATTERN.fullmatch(text):
        raise _Invalid("must be an env var name (example: ANTHROPIC_API_KEY)")
    return text


def _boolean(value: object) -> bool:
    if not isinstance(value, bool):
        raise _Invalid(f"expected boolean, got {type(value).__name__}")
    return value


def _integer(value: object, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _Invalid(f"expected integer, got {type(value).__name__}")
    if value < minimum:
        raise _Invalid(f"must be >= {minimum}")
    return value


def _retry_count(value: object) -> int:
    return _integer(value, minimum=0)


def _schema_version(value: object) -> int:
    version = _integer(value, minimum=1)
    if version != ConfigSchemaVersion:
        raise _Invalid(migration_guidance(version))
    return version


def _positive_seconds(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _Invalid(f"expected number, got {type(value).__name__}")
    seconds = float(value)
    if not math.isfinite(seconds):
        raise _Invalid("must be finite")
    if seconds <= 0:
        raise _Invalid("must be > 0")
    return seconds


def _one_of(choices: tuple[str, ...]) -> _Rule:
    expected = ", ".join(sorted(choices))

    def check(value: object) -> str:
        text = _text(value)
        if text not in choices:
            raise _Invalid(f"invalid value {text!r}; expected one of: {expected}")
        return text

    return check


_PROVIDER_SHAPE: Final[dict[str, _Field]] = {"api_key_env": _Field(_env_name)}

_CONFIG_SHAPE: Final[dict[str, _Field]] = {
    "meta": _Field(shape={"schema_version": _Field(_schema_version)}),
    "providers": _Field(
        shape={name: _Field(shape=_PROVIDER_SHAPE, required=False) for name in PROVIDER_NAMES}
    ),
    "repair": _Field(
        shape={"debug_dumps": _Field(_boolean), "debug_dump_dir": _Field(_path_text)}
    ),
    "repack": _Field(
        shape={
            "enabled": _Field(_boolean),
            "timeout_seconds": _Field(_positive_seconds),
            "max_retries": _Field(_retry_count),
            "model": _Field(_optional_text, required=False),
        }
    ),
    "retention": _Field(
        shape={"sensitive_ttl_hours": _Field(resolve_retention_hours, required=False)}
    ),
    "paths": _Field(
        shape={
            "state_db": _Field(_path_text),
            "schema_dir": _Field(_optional_path_text, required=False),
        }
    ),
    "observability": _Field(
        shape={
            "log_level": _Field(_one_of(LOG_LEVELS)),
            "log_format": _Field(_one_of(LOG_FORMATS)),
        }
    ),
}


def default_config() -> RepairServiceConfig:
    """A fresh deep copy of ``DEFAULT_CONFIG``."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade coursegen.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the coursegen-repair package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base`` into a new dict; inputs are not modified."""

    merged: dict[str, Any] = {}
    for source in (base, overlay):
        for key, value in source.items():
            if isinstance(value, Mapping):
                current = merged.get(key)
                merged[key] = merge_config(current if isinstance(current, dict) else {}, value)
            else:
                merged[key] = copy.deepcopy(value)
    return merged


def validate_config(config: object) -> ConfigValidationResult:
    issues: list[ConfigValidationIssue] = []
    normalized = _check_object(config, _CONFIG_SHAPE, "", issues)
    if issues or normalized is None:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: object) -> dict[str, Any]:
    """Normalized config, or ``ConfigValidationError`` listing every issue."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: object) -> dict[str, Any]:
    """Copy of ``config`` with secrets and ``*_env`` names masked; non-mappings give ``{}``."""

    if not isinstance(config, Mapping):
        return {}
    return {key: _redacted(key, config[key]) for key in sorted(config)}


def _check_object(
    payload: object,
    shape: Mapping[str, _Field],
    path: str,
    issues: list[ConfigValidationIssue],
) -> dict[str, Any] | None:
    def report(key: str, message: str) -> None:
        issues.append(ConfigValidationIssue(f"{path}.{key}" if path else key, message))

    here = path or "<root>"
    if not isinstance(payload, Mapping):
        issues.append(ConfigValidationIssue(here, f"expected object, got {type(payload).__name__}"))
        return None

    for key in sorted(payload, key=str):
        if not isinstance(key, str):
            issues.append(
                ConfigValidationIssue(here, f"object key must be string, got {type(key).__name__}")
            )
        elif key not in shape:
            if is_sensitive_key(key):
                report(
                    key,
                    "embedded secret values are forbidden; use an *_env key with an env var name",
                )
            else:
                report(key, "unknown field")
    for key in sorted(shape):
        if shape[key].required and key not in payload:
            report(key, "missing required field")

    out: dict[str, Any] = {}
    for key, spec in shape.items():
        if spec.shape is not None:
            if key in payload:
                nested_path = f"{path}.{key}" if path else key
                out[key] = _check_object(payload[key], spec.shape, nested_path, issues)
        elif spec.rule is not None and (key in payload or not spec.required):
            try:
                out[key] = spec.rule(payload.get(key))
            except _Invalid as exc:
                report(key, str(exc))
    return out


def _redacted(key: str, value: object) -> object:
    # Env var names are not secrets, but they reveal deployment layout; dumps hide them too.
    if value is not None and (key.lower().endswith("_env") or is_sensitive_key(key)):
        return _REDACTED
    if isinstance(value, Mapping):
        return {child: _redacted(child, value[child]) for child in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [_redacted(key, item) for item in value]
    return value


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "OPTIONAL_FIELDS",
    "PATH_FIELDS",
    "PROVIDER_NAMES",
    "RETENTION_HOURS_PATH",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "RepairServiceConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
