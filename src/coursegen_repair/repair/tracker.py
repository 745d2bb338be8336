"""Per-attempt repair telemetry, mutated in place by whichever layer runs."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from coursegen_repair.repair.unwrap import WrapperType
from coursegen_repair.schema.descriptor import JSONValue
from coursegen_repair.schema.validation import ValidationIssue


class RepairResult(StrEnum):
    COERCION_SUCCESS = "coercion-success"
    UNWRAPPED_ONLY = "unwrapped-only"
    JSON_PARSE_FAILED = "json-parse-failed"
    RETURNED_NULL = "returned-null"


@dataclass(slots=True)
class RepairTracker:
    """Mutable record of which layers ran and what each produced.

    One tracker belongs to exactly one generation call and is never shared.
    """

    layer0_called: bool = False
    layer1_called: bool = False
    layer2_called: bool = False
    raw_text: str = ""
    raw_text_length: int = 0
    repair_result: RepairResult | None = None
    wrapper_type: WrapperType = WrapperType.NONE
    layer1_success: bool = False
    layer1_had_wrapper: bool = False
    layer1_wrapper_type: WrapperType = WrapperType.NONE
    layer1_raw_text: str | None = None
    validation_errors: list[ValidationIssue] | None = None
    layer2_success: bool = False
    layer2_model_id: str | None = None
    layer2_error: str | None = None
    error: str | None = None

    def record_layer0_input(self, text: str, error_message: str | None) -> None:
        self.layer0_called = True
        self.raw_text = text
        self.raw_text_length = len(text)
        # Later internal failures overwrite the triggering validation error.
        self.error = error_message

    def record_layer1(
        self,
        *,
        raw_text: str,
        wrapper_type: WrapperType,
        success: bool,
        issues: tuple[ValidationIssue, ...] = (),
    ) -> None:
        self.layer1_called = True
        self.layer1_raw_text = raw_text
        self.layer1_wrapper_type = wrapper_type
        self.layer1_had_wrapper = wrapper_type is not WrapperType.NONE
        self.layer1_success = success
        if issues:
            self.validation_errors = list(issues)

    def record_layer2(
        self, *, model_id: str | None, success: bool, error: str | None = None
    ) -> None:
        self.layer2_called = True
        self.layer2_model_id = model_id
        self.layer2_success = success
        self.layer2_error = None if success else error

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "layer0_called": self.layer0_called,
            "layer1_called": self.layer1_called,
            "layer2_called": self.layer2_called,
            "raw_text_length": self.raw_text_length,
            "repair_result": None if self.repair_result is None else self.repair_result.value,
            "wrapper_type": self.wrapper_type.value,
            "layer1_success": self.layer1_success,
            "layer1_had_wrapper": self.layer1_had_wrapper,
            "layer1_wrapper_type": self.layer1_wrapper_type.value,
            "validation_errors": (
                None
                if self.validation_errors is None
                else [issue.to_dict() for issue in self.validation_errors]
            ),
            "layer2_success": self.layer2_success,
            "layer2_model_id": self.layer2_model_id,
            "layer2_error": self.layer2_error,
            "error": self.error,
        }


__all__ = ["RepairResult", "RepairTracker"]
