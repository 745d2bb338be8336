"""
coursegen-repair — layered config loading

File: src/coursegen_repair/config/loader.py
Last updated: 2026-02-18

Purpose
- Build the effective config from defaults, ``coursegen.toml``, ``COURSEGEN_*`` environment
  variables and command-line overrides, later sources winning.

Functional requirements
- Each default scalar maps to one env variable: ``repack.max_retries`` is
  ``COURSEGEN_REPACK_MAX_RETRIES`` and is parsed with the type of its default.
- ``COURSEGEN_RETENTION_SENSITIVE_TTL_HOURS`` is passed through untouched so that a
  malformed value falls back to the default window instead of aborting startup.
- Relative paths resolve against the directory holding the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from coursegen_repair.config.schema import (
    OPTIONAL_FIELDS,
    PATH_FIELDS,
    RETENTION_HOURS_PATH,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "coursegen.toml"
ENV_PREFIX: Final[str] = "COURSEGEN_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_EnvParser = Callable[[str], object]


class ConfigLoadError(ValueError):
    """The config file is unreadable or an override has the wrong type."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    A missing ``coursegen.toml`` in the working directory is fine; a missing file that
    was named explicitly is an error. ``cli_overrides`` keys are dotted paths and
    ``None`` values are skipped.
    """

    if config_path is None:
        path = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    else:
        path = Path(config_path).expanduser().resolve()
    env = os.environ if environ is None else environ

    config = merge_config(default_config(), _read_toml(path, required=config_path is not None))
    config = merge_config(config, _env_overrides(env))
    for key, value in sorted((cli_overrides or {}).items()):
        if value is not None:
            _assign(config, _dotted(key), value)

    config = assert_valid_config(config)
    return assert_valid_config(normalize_paths(config, base_dir=path.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Copy ``config`` with every configured path made absolute against ``base_dir``."""

    normalized = merge_config({}, config)
    for *parents, leaf in PATH_FIELDS:
        section: Any = normalized
        for part in parents:
            section = section.get(part) if isinstance(section, dict) else None
        if isinstance(section, dict) and isinstance(section.get(leaf), str):
            section[leaf] = _absolute(section[leaf], base_dir)
    return normalized


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact, key-sorted JSON of the redacted config."""

    return json.dumps(
        redact_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_name, (field_path, parse) in sorted(_env_bindings().items()):
        raw = env.get(env_name)
        if raw is None:
            continue
        try:
            value = parse(raw)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(field_path)} must be {exc}") from exc
        _assign(overrides, field_path, value)
    return overrides


def _env_bindings() -> dict[str, tuple[tuple[str, ...], _EnvParser]]:
    bindings: dict[str, tuple[tuple[str, ...], _EnvParser]] = {}
    for field_path, default in _scalars(default_config()):
        parse = _parser_for(default)
        if parse is not None:
            bindings[env_name_for_path(field_path)] = (field_path, parse)
    for field_path, _ in OPTIONAL_FIELDS:
        bindings[env_name_for_path(field_path)] = (field_path, str.strip)
    # Retention is validated leniently downstream.
    bindings[env_name_for_path(RETENTION_HOURS_PATH)] = (RETENTION_HOURS_PATH, str)
    return bindings


def _scalars(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key, value in payload.items():
        if isinstance(value, Mapping):
            yield from _scalars(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _parser_for(default: object) -> _EnvParser | None:
    if isinstance(default, bool):
        return _parse_bool
    if isinstance(default, int):
        return _parse_int
    if isinstance(default, float):
        return _parse_float
    if isinstance(default, str):
        return str.strip
    return None


def _parse_int(raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError("an integer") from None


def _parse_float(raw: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        raise ValueError("a number") from None


def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("a boolean (true/false/1/0/yes/no/on/off)")


def _dotted(key: str) -> tuple[str, ...]:
    path = tuple(part for part in key.split(".") if part)
    if not path:
        raise ConfigLoadError(f"invalid CLI override key {key!r}")
    return path


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    for part in path[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = target[part] = {}
        target = child
    target[path[-1]] = value


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "env_name_for_path",
    "load_config",
    "normalize_paths",
]
