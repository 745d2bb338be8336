"""
coursegen-repair — Layer 2 model repack

File: src/coursegen_repair/repair/repack.py
Last updated: 2026-02-11

Purpose
- Ask a cheaper model to re-serialize malformed output against the schema, without
  inventing content.

Functional requirements
- One provider call bounded by ``asyncio.wait_for``; no retries of its own.
- Timeouts, provider errors and unknown/unsupported models are ordinary Layer 2
  failures reported on the result, never raised.
- The model's reply goes through unwrap and coerce+validate before it is accepted.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from typing import Any

import structlog
from jinja2 import Environment, StrictUndefined, Template

from coursegen_repair.constants import DEFAULT_REPACK_MAX_TOKENS, DEFAULT_REPACK_TIMEOUT_SECONDS
from coursegen_repair.providers.base import (
    ProviderError,
    ProviderRegistry,
    ProviderRequest,
    StructuredOutputDefinition,
)
from coursegen_repair.providers.model_registry import provider_for_model
from coursegen_repair.repair.coercion import try_coerce_and_validate
from coursegen_repair.repair.quote_repair import loads_with_quote_repair
from coursegen_repair.repair.unwrap import unwrap_parameter
from coursegen_repair.schema.descriptor import JSONValue, SchemaDescriptor

_TEMPLATE_NAME = "repack_prompt.j2"
_OUTPUT_NAME = "repacked_output"


@dataclass(frozen=True, slots=True)
class RepackResult:
    value: JSONValue | None
    model_id: str | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


def render_repack_prompt(raw_text: str) -> str:
    """Render the fixed re-serialization instructions around ``raw_text``."""

    return _repack_template().render(raw_text=raw_text)


class ModelRepacker:
    """Layer 2: one bounded call to a repack model."""

    def __init__(
        self,
        providers: ProviderRegistry,
        *,
        timeout_seconds: float = DEFAULT_REPACK_TIMEOUT_SECONDS,
        max_tokens: int = DEFAULT_REPACK_MAX_TOKENS,
        logger: Any | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._providers = providers
        self._timeout_seconds = float(timeout_seconds)
        self._max_tokens = max_tokens
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def repack(
        self,
        raw_text: str,
        schema: SchemaDescriptor,
        *,
        model_id: str,
    ) -> RepackResult:
        log = self._logger.bind(model_id=model_id)
        log.info("repack_started", raw_text_length=len(raw_text), timeout_s=self._timeout_seconds)

        try:
            provider = self._providers.get(provider_for_model(model_id).value)
        except KeyError as exc:
            return self._failed(log, model_id, "unknown_model", str(exc))
        except ProviderError as exc:
            return self._failed(log, model_id, exc.code, exc.detail)

        request = ProviderRequest(
            model=model_id,
            user_prompt=render_repack_prompt(raw_text),
            structured_output=StructuredOutputDefinition(
                name=_OUTPUT_NAME,
                json_schema=schema.to_json_schema(),
                strict=False,
            ),
            max_tokens=self._max_tokens,
        )
        try:
            response = await asyncio.wait_for(provider.send(request), self._timeout_seconds)
        except TimeoutError:
            return self._failed(log, model_id, "timeout", f"exceeded {self._timeout_seconds}s")
        except ProviderError as exc:
            return self._failed(log, model_id, exc.code, exc.detail)
        except Exception as exc:  # noqa: BLE001 - any Layer 2 failure falls through to exhaustion.
            return self._failed(log, model_id, "unexpected", f"{type(exc).__name__}: {exc}")

        try:
            parsed = loads_with_quote_repair(response.output_text)
        except (json.JSONDecodeError, RecursionError) as exc:
            return self._failed(log, model_id, "json_parse_failed", str(exc))

        outcome = try_coerce_and_validate(unwrap_parameter(parsed).value, schema, logger=log)
        if not outcome.ok:
            return self._failed(
                log, model_id, "validation_failed", f"{len(outcome.issues)} issue(s)"
            )

        log.info("repack_succeeded", latency_ms=response.usage.latency_ms)
        return RepackResult(value=outcome.value, model_id=model_id)

    @staticmethod
    def _failed(log: Any, model_id: str, reason: str, detail: str) -> RepackResult:
        log.warning("repack_failed", reason=reason, detail=detail)
        return RepackResult(value=None, model_id=model_id, error=f"{reason}: {detail}")


@lru_cache(maxsize=1)
def _repack_template() -> Template:
    source = (
        resources.files("coursegen_repair")
        .joinpath("templates", _TEMPLATE_NAME)
        .read_text(encoding="utf-8")
    )
    environment = Environment(
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=False,
        lstrip_blocks=False,
        newline_sequence="\n",
        keep_trailing_newline=False,
    )
    return environment.from_string(source)


__all__ = ["ModelRepacker", "RepackResult", "render_repack_prompt"]
