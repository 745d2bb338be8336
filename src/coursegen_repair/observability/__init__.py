"""Observability: structlog configuration and log redaction."""

from coursegen_repair.observability.logging import (
    LOG_FORMATS,
    configure_logging,
    correlation_scope,
    redact_event,
)

__all__ = ["LOG_FORMATS", "configure_logging", "correlation_scope", "redact_event"]
