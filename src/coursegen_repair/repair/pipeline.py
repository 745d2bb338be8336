"""
coursegen-repair — three-layer repair orchestration

File: src/coursegen_repair/repair/pipeline.py
Last updated: 2026-02-18

Purpose
- Sequence the repair layers around one structured generation call.

What should be included in this file
- Layer 0: inline ``RepairHook`` passed to the structured call.
- Layer 1: re-coerce the raw text carried by the failure outcome.
- Layer 2: model repack, only when Layer 1 fails and a repack model is configured.
- Exhaustion: return the original failure untouched.

Functional requirements
- Layers run strictly in sequence, each at most once per call.
- One ``RepairTracker`` per call; it is never shared across calls.
- The generation log is finalized exactly once per call, including on provider errors.
- Log lines emitted during a call carry its generation type, schema and course ids.

Non-functional requirements
- Layers 0 and 1 never raise for malformed model output.
"""

from __future__ import annotations

import json
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from coursegen_repair.observability.logging import correlation_scope
from coursegen_repair.providers.base import ProviderError, ProviderProtocol, ProviderRequest
from coursegen_repair.repair.coercion import try_coerce_and_validate
from coursegen_repair.repair.debug_dump import DebugDumpSink
from coursegen_repair.repair.hook import RepairHook
from coursegen_repair.repair.quote_repair import loads_with_quote_repair
from coursegen_repair.repair.repack import ModelRepacker
from coursegen_repair.repair.structured_call import (
    StructuredCallFailure,
    StructuredCallOutcome,
    StructuredCallSuccess,
    generate_structured,
    validate_with_repair,
)
from coursegen_repair.repair.tracker import RepairTracker
from coursegen_repair.repair.unwrap import WrapperType, unwrap_parameter
from coursegen_repair.schema.descriptor import JSONValue, SchemaDescriptor

if TYPE_CHECKING:
    from coursegen_repair.telemetry.generation_logger import GenerationLogger


@dataclass(frozen=True, slots=True)
class RepairRun:
    """Final outcome of one call plus the tracker that describes how it got there."""

    outcome: StructuredCallOutcome
    tracker: RepairTracker

    @property
    def ok(self) -> bool:
        return self.outcome.ok

    @property
    def value(self) -> JSONValue | None:
        if isinstance(self.outcome, StructuredCallSuccess):
            return self.outcome.value
        return None

    def unwrap(self) -> JSONValue:
        return self.outcome.unwrap()


def run_layer1(
    raw_text: str,
    schema: SchemaDescriptor,
    tracker: RepairTracker,
    *,
    logger: Any | None = None,
) -> JSONValue | None:
    """Re-run unwrap and coercion on the failure's raw text; records onto ``tracker``."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    try:
        parsed = loads_with_quote_repair(raw_text)
    except (json.JSONDecodeError, RecursionError) as exc:
        tracker.record_layer1(raw_text=raw_text, wrapper_type=WrapperType.NONE, success=False)
        log.info(
            "repair_layer1_result",
            success=False,
            reason="json_parse_failed",
            error=str(exc),
        )
        return None

    try:
        unwrapped = unwrap_parameter(parsed)
        outcome = try_coerce_and_validate(unwrapped.value, schema, logger=log)
    except Exception as exc:  # noqa: BLE001 - Layer 1 must not raise.
        tracker.record_layer1(raw_text=raw_text, wrapper_type=WrapperType.NONE, success=False)
        tracker.error = f"{type(exc).__name__}: {exc}"
        log.warning(
            "repair_layer1_result",
            success=False,
            reason="internal_error",
            error=tracker.error,
        )
        return None

    tracker.record_layer1(
        raw_text=raw_text,
        wrapper_type=unwrapped.wrapper_type,
        success=outcome.ok,
        issues=outcome.issues,
    )
    log.info(
        "repair_layer1_result",
        success=outcome.ok,
        wrapper_type=unwrapped.wrapper_type.value,
        issue_count=len(outcome.issues),
    )
    return outcome.value if outcome.ok else None


class RepairPipeline:
    """Runs a structured call through Layers 0, 1 and 2 in order."""

    def __init__(
        self,
        *,
        repacker: ModelRepacker | None = None,
        repack_model: str | None = None,
        dump_sink: DebugDumpSink | None = None,
        logger: Any | None = None,
    ) -> None:
        self._repacker = repacker
        self._repack_model = repack_model
        self._dump_sink = dump_sink if dump_sink is not None else DebugDumpSink.disabled()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def repack_model(self) -> str | None:
        return self._repack_model

    async def run(
        self,
        provider: ProviderProtocol,
        request: ProviderRequest,
        schema: SchemaDescriptor,
        *,
        generation_logger: GenerationLogger | None = None,
    ) -> RepairRun:
        """Generate, then repair as needed; provider errors are logged and re-raised."""

        tracker = RepairTracker()
        hook = RepairHook(schema, tracker, dump_sink=self._dump_sink, logger=self._logger)
        with _call_scope(generation_logger, model_id=request.model):
            try:
                try:
                    outcome = await generate_structured(
                        provider,
                        request,
                        schema,
                        repair_hook=hook,
                        logger=self._logger,
                    )
                except ProviderError as exc:
                    if generation_logger is not None:
                        generation_logger.record_layer0(tracker)
                        generation_logger.record_failure(str(exc))
                    raise
                if generation_logger is not None:
                    generation_logger.record_layer0(tracker)
                return await self._recover(outcome, schema, tracker, generation_logger)
            finally:
                if generation_logger is not None:
                    generation_logger.finalize()

    def repair_text(
        self,
        text: str,
        schema: SchemaDescriptor,
        *,
        generation_logger: GenerationLogger | None = None,
    ) -> RepairRun:
        """Offline Layers 0 and 1 over text already produced by a model."""

        tracker = RepairTracker()
        hook = RepairHook(schema, tracker, dump_sink=self._dump_sink, logger=self._logger)
        with _call_scope(generation_logger):
            try:
                outcome = validate_with_repair(
                    text, schema, repair_hook=hook, logger=self._logger
                )
                if generation_logger is not None:
                    generation_logger.record_layer0(tracker)
                if isinstance(outcome, StructuredCallSuccess):
                    return RepairRun(outcome, tracker)
                value = self._layer1(outcome, schema, tracker, generation_logger)
                if value is not None:
                    return _repaired(value, outcome, tracker)
                return self._exhausted(outcome, tracker, generation_logger)
            finally:
                if generation_logger is not None:
                    generation_logger.finalize()

    async def _recover(
        self,
        outcome: StructuredCallOutcome,
        schema: SchemaDescriptor,
        tracker: RepairTracker,
        generation_logger: GenerationLogger | None,
    ) -> RepairRun:
        if isinstance(outcome, StructuredCallSuccess):
            return RepairRun(outcome, tracker)

        value = self._layer1(outcome, schema, tracker, generation_logger)
        if value is not None:
            return _repaired(value, outcome, tracker)
        if self._repacker is None or self._repack_model is None:
            return self._exhausted(outcome, tracker, generation_logger)

        result = await self._repacker.repack(outcome.raw_text, schema, model_id=self._repack_model)
        tracker.record_layer2(model_id=result.model_id, success=result.ok, error=result.error)
        if generation_logger is not None:
            generation_logger.record_layer2(model_id=result.model_id, success=result.ok)
        if result.ok and result.value is not None:
            return _repaired(result.value, outcome, tracker)
        return self._exhausted(outcome, tracker, generation_logger)

    def _layer1(
        self,
        failure: StructuredCallFailure,
        schema: SchemaDescriptor,
        tracker: RepairTracker,
        generation_logger: GenerationLogger | None,
    ) -> JSONValue | None:
        value = run_layer1(failure.raw_text, schema, tracker, logger=self._logger)
        if generation_logger is not None:
            generation_logger.record_layer1(
                raw_text=failure.raw_text,
                wrapper_type=tracker.layer1_wrapper_type,
                success=value is not None,
                issues=tuple(tracker.validation_errors or ()),
            )
        return value

    def _exhausted(
        self,
        failure: StructuredCallFailure,
        tracker: RepairTracker,
        generation_logger: GenerationLogger | None,
    ) -> RepairRun:
        self._logger.warning(
            "repair_exhausted",
            layer0_result=None if tracker.repair_result is None else tracker.repair_result.value,
            layer1_called=tracker.layer1_called,
            layer2_called=tracker.layer2_called,
            issue_count=len(failure.error.issues),
        )
        if generation_logger is not None:
            generation_logger.record_failure(str(failure.error))
        return RepairRun(failure, tracker)


def _call_scope(
    generation_logger: GenerationLogger | None, **fields: str | None
) -> AbstractContextManager[None]:
    """Correlation fields bound to every log line emitted during one call."""

    if generation_logger is not None:
        context = generation_logger.context
        fields.update(
            generation_type=context.generation_type.value,
            schema_name=context.schema_name,
            course_id=context.course_id,
            lesson_id=context.lesson_id,
        )
    return correlation_scope(**fields)


def _repaired(
    value: JSONValue,
    failure: StructuredCallFailure,
    tracker: RepairTracker,
) -> RepairRun:
    return RepairRun(
        StructuredCallSuccess(value=value, raw_text=failure.raw_text, repaired=True),
        tracker,
    )


__all__ = ["RepairPipeline", "RepairRun", "run_layer1"]
