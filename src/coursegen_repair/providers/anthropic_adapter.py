"""
coursegen-repair — Anthropic provider adapter

File: src/coursegen_repair/providers/anthropic_adapter.py
Last updated: 2026-02-18

Purpose
- Messages API adapter used for structured generation and the Layer 2 repack.

Functional requirements
- Structured output uses a single forced tool whose ``input_schema`` is the contract.
  The tool input is serialized back to text so repair layers see what the model emitted
  (including any ``{"parameter": ...}`` envelope).
"""

from __future__ import annotations

import json
from typing import cast

from coursegen_repair.constants import DEFAULT_REPACK_MAX_TOKENS
from coursegen_repair.providers.base import (
    ProviderRequest,
    ProviderResponse,
    ProviderResponseError,
    ProviderUsage,
    read_int,
    read_sequence,
    read_str,
    read_value,
)
from coursegen_repair.providers.sdk import SDKProvider
from coursegen_repair.schema.descriptor import JSONValue


class AnthropicProvider(SDKProvider):
    provider_name = "anthropic"
    vendor = "Anthropic"
    sdk_module = "anthropic"
    client_class = "AsyncAnthropic"
    endpoint = "messages"
    default_api_key_env = "ANTHROPIC_API_KEY"

    def build_payload(self, request: ProviderRequest) -> dict[str, object]:
        # max_tokens is mandatory on this API.
        payload: dict[str, object] = {
            "model": request.model,
            "max_tokens": request.max_tokens or DEFAULT_REPACK_MAX_TOKENS,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if request.temperature is not None:
            payload["temperature"] = request.temperature

        contract = request.structured_output
        if contract is not None:
            tool: dict[str, object] = {"name": contract.name, "input_schema": contract.json_schema}
            if contract.description is not None:
                tool["description"] = contract.description
            payload["tools"] = [tool]
            payload["tool_choice"] = {"type": "tool", "name": contract.name}
        return payload

    def parse_response(
        self, raw: object, *, request: ProviderRequest, latency_ms: int
    ) -> ProviderResponse:
        tool_name = None if request.structured_output is None else request.structured_output.name
        texts: list[str] = []
        tool_text: str | None = None
        tool_input: JSONValue | None = None

        for block in read_sequence(raw, "content"):
            kind = (read_str(block, "type") or "").lower()
            if kind == "text":
                chunk = read_str(block, "text")
                if chunk:
                    texts.append(chunk)
            elif kind == "tool_use" and tool_name and read_str(block, "name") == tool_name:
                value = read_value(block, "input")
                if isinstance(value, str):
                    tool_text = value
                    continue
                try:
                    tool_text = json.dumps(value, ensure_ascii=False)
                except (TypeError, ValueError) as exc:
                    raise ProviderResponseError(
                        "tool_use input is not JSON-serializable", provider=self.provider_name
                    ) from exc
                tool_input = cast("JSONValue", value)

        text = tool_text if tool_text is not None else "\n".join(texts)
        if not text and tool_input is None:
            raise ProviderResponseError(
                "response does not contain text or tool input", provider=self.provider_name
            )

        usage = read_value(raw, "usage")
        prompt_tokens = read_int(usage, "input_tokens") or 0
        completion_tokens = read_int(usage, "output_tokens") or 0
        return ProviderResponse(
            model=read_str(raw, "model") or request.model,
            raw_text=text,
            structured_output=tool_input,
            usage=ProviderUsage(
                input_tokens=prompt_tokens,
                output_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
                latency_ms=latency_ms,
            ),
            finish_reason=read_str(raw, "stop_reason"),
            request_id=read_str(raw, "id"),
        )


__all__ = ["AnthropicProvider"]
