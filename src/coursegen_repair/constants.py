"""Stable constants shared across the repair pipeline."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Envelope produced by forced tool-calling structured output.
WRAPPER_KEY: Final[str] = "parameter"

# Enum fuzzy matching: maximum normalized Levenshtein distance accepted.
ENUM_MATCH_THRESHOLD: Final[float] = 0.2

# Sensitive payload retention.
DEFAULT_RETENTION_HOURS: Final[int] = 24

# Generation log payload bounds.
RAW_TEXT_MAX_CHARS: Final[int] = 200 * 1024
INLINE_MAX_CHARS: Final[int] = 800
LONG_BLOCK_MIN_CHARS: Final[int] = 1200

# Layer 2 defaults.
DEFAULT_REPACK_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_REPACK_MAX_TOKENS: Final[int] = 8192

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
STATE_DB_SCHEMA_VERSION: Final[int] = 1
SCHEMA_DEFINITION_VERSION: Final[int] = 1

# Default runtime paths (relative to the working directory unless overridden by config).
STATE_DIR: Final[PurePosixPath] = PurePosixPath("state")
DEFAULT_STATE_DB_PATH: Final[PurePosixPath] = STATE_DIR / "coursegen.sqlite"
DEFAULT_DEBUG_DUMP_DIR: Final[PurePosixPath] = PurePosixPath(".debug-dumps")

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_DEBUG_DUMP_DIR",
    "DEFAULT_REPACK_MAX_TOKENS",
    "DEFAULT_REPACK_TIMEOUT_SECONDS",
    "DEFAULT_RETENTION_HOURS",
    "DEFAULT_STATE_DB_PATH",
    "ENUM_MATCH_THRESHOLD",
    "INLINE_MAX_CHARS",
    "LONG_BLOCK_MIN_CHARS",
    "RAW_TEXT_MAX_CHARS",
    "SCHEMA_DEFINITION_VERSION",
    "STATE_DB_SCHEMA_VERSION",
    "STATE_DIR",
    "WRAPPER_KEY",
]
