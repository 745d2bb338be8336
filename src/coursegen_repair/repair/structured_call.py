"""
coursegen-repair — structured-output call with an inline repair hook

File: src/coursegen_repair/repair/structured_call.py
Last updated: 2026-02-11

Purpose
- Send one structured generation request, parse and validate the model text, and give
  the repair hook a single chance to correct it before reporting failure.

Functional requirements
- Result-style outcome: ``StructuredCallSuccess | StructuredCallFailure``.
- The failure carries ``NoObjectGeneratedError`` with the last text that was validated,
  so Layer 1 works from the hook's output when the hook produced one.
- Provider errors propagate unchanged.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeAlias

import structlog

from coursegen_repair.providers.base import ProviderProtocol, ProviderRequest
from coursegen_repair.schema.descriptor import JSONValue, SchemaDescriptor
from coursegen_repair.schema.validation import ValidationIssue, format_issues, validate_value

RepairHookFn: TypeAlias = Callable[[str, object], str | None]


class NoObjectGeneratedError(RuntimeError):
    """Model output could not be parsed or did not match the schema."""

    def __init__(
        self,
        message: str,
        *,
        text: str,
        issues: tuple[ValidationIssue, ...] = (),
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.text = text
        self.issues = tuple(issues)
        self.cause = cause

    @classmethod
    def from_validation(
        cls,
        text: str,
        *,
        issues: tuple[ValidationIssue, ...] = (),
        cause: BaseException | None = None,
    ) -> NoObjectGeneratedError:
        if cause is not None:
            message = f"no object generated: could not parse the response ({cause})"
        else:
            message = (
                "no object generated: response did not match schema\n" + format_issues(issues)
            )
        return cls(message, text=text, issues=issues, cause=cause)


@dataclass(frozen=True, slots=True)
class StructuredCallSuccess:
    value: JSONValue
    raw_text: str
    repaired: bool = False

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> JSONValue:
        return self.value


@dataclass(frozen=True, slots=True)
class StructuredCallFailure:
    error: NoObjectGeneratedError

    @property
    def ok(self) -> bool:
        return False

    @property
    def raw_text(self) -> str:
        return self.error.text

    def unwrap(self) -> JSONValue:
        raise self.error


StructuredCallOutcome: TypeAlias = StructuredCallSuccess | StructuredCallFailure


def parse_and_validate(
    text: str,
    schema: SchemaDescriptor,
) -> tuple[JSONValue | None, NoObjectGeneratedError | None]:
    """Strict parse plus validation; exactly one side of the pair is non-``None``."""

    try:
        value = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as exc:
        return None, NoObjectGeneratedError.from_validation(text, cause=exc)
    issues = validate_value(value, schema)
    if issues:
        return None, NoObjectGeneratedError.from_validation(text, issues=issues)
    return value, None


async def generate_structured(
    provider: ProviderProtocol,
    request: ProviderRequest,
    schema: SchemaDescriptor,
    *,
    repair_hook: RepairHookFn | None = None,
    logger: Any | None = None,
) -> StructuredCallOutcome:
    """Run one structured generation call; the hook is invoked at most once."""

    response = await provider.send(request)
    return validate_with_repair(
        response.output_text,
        schema,
        repair_hook=repair_hook,
        logger=logger,
    )


def validate_with_repair(
    raw_text: str,
    schema: SchemaDescriptor,
    *,
    repair_hook: RepairHookFn | None = None,
    logger: Any | None = None,
) -> StructuredCallOutcome:
    """Validate model text, giving ``repair_hook`` one chance on failure."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    value, error = parse_and_validate(raw_text, schema)
    if error is None:
        return StructuredCallSuccess(value=value, raw_text=raw_text)

    log.info(
        "structured_call_validation_failed",
        raw_text_length=len(raw_text),
        issue_count=len(error.issues),
        parse_failed=error.cause is not None,
    )
    if repair_hook is None:
        return StructuredCallFailure(error)

    repaired_text = repair_hook(raw_text, error)
    if repaired_text is None:
        return StructuredCallFailure(error)

    value, repaired_error = parse_and_validate(repaired_text, schema)
    if repaired_error is None:
        return StructuredCallSuccess(value=value, raw_text=raw_text, repaired=True)
    log.info(
        "structured_call_repair_rejected",
        issue_count=len(repaired_error.issues),
    )
    return StructuredCallFailure(repaired_error)


__all__ = [
    "NoObjectGeneratedError",
    "RepairHookFn",
    "StructuredCallFailure",
    "StructuredCallOutcome",
    "StructuredCallSuccess",
    "generate_structured",
    "parse_and_validate",
    "validate_with_repair",
]
