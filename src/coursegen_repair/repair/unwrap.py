"""Detection and removal of the ``{"parameter": ...}`` tool-call envelope."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from coursegen_repair.constants import WRAPPER_KEY
from coursegen_repair.repair.quote_repair import loads_with_quote_repair


class WrapperType(StrEnum):
    NONE = "none"
    OBJECT = "object"
    STRINGIFIED = "stringified"


@dataclass(frozen=True, slots=True)
class UnwrapResult:
    value: object
    wrapper_type: WrapperType

    @property
    def had_wrapper(self) -> bool:
        return self.wrapper_type is not WrapperType.NONE


def unwrap_parameter(value: object, *, marker: str = WRAPPER_KEY) -> UnwrapResult:
    """Strip the envelope when ``value`` is an object whose only key is ``marker``.

    An object payload is returned as-is (``OBJECT``); a string payload is parsed
    as JSON (``STRINGIFIED``). A string that cannot be parsed leaves the original
    value untouched with ``NONE``. Never raises.
    """

    if not isinstance(value, Mapping) or set(value) != {marker}:
        return UnwrapResult(value, WrapperType.NONE)

    inner = value[marker]
    if isinstance(inner, Mapping):
        return UnwrapResult(inner, WrapperType.OBJECT)
    if isinstance(inner, str):
        try:
            parsed = loads_with_quote_repair(inner)
        except (json.JSONDecodeError, RecursionError):
            return UnwrapResult(value, WrapperType.NONE)
        return UnwrapResult(parsed, WrapperType.STRINGIFIED)
    return UnwrapResult(value, WrapperType.NONE)


__all__ = ["UnwrapResult", "WrapperType", "unwrap_parameter"]
