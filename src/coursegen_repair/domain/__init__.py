"""Domain enums, IDs and timestamp helpers shared across subsystems."""

from coursegen_repair.domain.ids import generate_generation_log_id, validate_generation_log_id
from coursegen_repair.domain.models import (
    GenerationOutcome,
    GenerationType,
    format_timestamp,
    parse_timestamp,
    utc_now,
)

__all__ = [
    "GenerationOutcome",
    "GenerationType",
    "format_timestamp",
    "generate_generation_log_id",
    "parse_timestamp",
    "utc_now",
    "validate_generation_log_id",
]
