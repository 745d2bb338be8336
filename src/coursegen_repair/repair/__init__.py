"""
coursegen-repair — repair layers

File: src/coursegen_repair/repair/__init__.py
Last updated: 2026-02-11

Purpose
- Unwrapper, quote repair, coercion engine and the three-layer orchestration around a
  structured-output call.
"""

from coursegen_repair.repair.coercion import (
    CoerceAndValidateOutcome,
    Coerced,
    CoercionResult,
    coerce_to_schema,
    match_enum_value,
    try_coerce_and_validate,
)
from coursegen_repair.repair.debug_dump import DebugDumpSink
from coursegen_repair.repair.hook import RepairHook, describe_error
from coursegen_repair.repair.pipeline import RepairPipeline, RepairRun, run_layer1
from coursegen_repair.repair.quote_repair import loads_with_quote_repair, repair_json_quotes
from coursegen_repair.repair.repack import ModelRepacker, RepackResult, render_repack_prompt
from coursegen_repair.repair.structured_call import (
    NoObjectGeneratedError,
    RepairHookFn,
    StructuredCallFailure,
    StructuredCallOutcome,
    StructuredCallSuccess,
    generate_structured,
    parse_and_validate,
    validate_with_repair,
)
from coursegen_repair.repair.tracker import RepairResult, RepairTracker
from coursegen_repair.repair.unwrap import UnwrapResult, WrapperType, unwrap_parameter

__all__ = [
    "CoerceAndValidateOutcome",
    "Coerced",
    "CoercionResult",
    "DebugDumpSink",
    "ModelRepacker",
    "NoObjectGeneratedError",
    "RepackResult",
    "RepairHook",
    "RepairHookFn",
    "RepairPipeline",
    "RepairResult",
    "RepairRun",
    "RepairTracker",
    "StructuredCallFailure",
    "StructuredCallOutcome",
    "StructuredCallSuccess",
    "UnwrapResult",
    "WrapperType",
    "coerce_to_schema",
    "describe_error",
    "generate_structured",
    "loads_with_quote_repair",
    "match_enum_value",
    "parse_and_validate",
    "render_repack_prompt",
    "repair_json_quotes",
    "run_layer1",
    "try_coerce_and_validate",
    "unwrap_parameter",
    "validate_with_repair",
]
