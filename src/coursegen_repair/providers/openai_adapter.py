"""
coursegen-repair — OpenAI provider adapter

File: src/coursegen_repair/providers/openai_adapter.py
Last updated: 2026-02-18

Purpose
- Responses API adapter used for structured generation and the Layer 2 repack.

Functional requirements
- Structured output uses ``text.format = json_schema``; the model's output text is
  returned verbatim as ``raw_text`` so malformed JSON reaches the repair layers intact.
"""

from __future__ import annotations

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

_TEXT_PART_TYPES = frozenset({"output_text", "text"})


class OpenAIProvider(SDKProvider):
    provider_name = "openai"
    vendor = "OpenAI"
    sdk_module = "openai"
    client_class = "AsyncOpenAI"
    endpoint = "responses"
    default_api_key_env = "OPENAI_API_KEY"

    def build_payload(self, request: ProviderRequest) -> dict[str, object]:
        payload: dict[str, object] = {"model": request.model, "input": request.user_prompt}
        if request.system_prompt:
            payload["instructions"] = request.system_prompt
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_output_tokens"] = request.max_tokens

        contract = request.structured_output
        if contract is not None:
            text_format: dict[str, object] = {
                "type": "json_schema",
                "name": contract.name,
                "schema": contract.json_schema,
                "strict": contract.strict,
            }
            if contract.description is not None:
                text_format["description"] = contract.description
            payload["text"] = {"format": text_format}
        return payload

    def parse_response(
        self, raw: object, *, request: ProviderRequest, latency_ms: int
    ) -> ProviderResponse:
        # ``output_text`` is an SDK convenience property; plain dicts only carry ``output``.
        text = read_str(raw, "output_text") or "\n".join(_message_texts(raw))
        if not text:
            raise ProviderResponseError(
                "response does not contain output text", provider=self.provider_name
            )

        usage = read_value(raw, "usage")
        prompt_tokens = _first_int(usage, "input_tokens", "prompt_tokens")
        completion_tokens = _first_int(usage, "output_tokens", "completion_tokens")
        total = read_int(usage, "total_tokens")
        return ProviderResponse(
            model=read_str(raw, "model") or request.model,
            raw_text=text,
            usage=ProviderUsage(
                input_tokens=prompt_tokens,
                output_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens if total is None else total,
                latency_ms=latency_ms,
            ),
            finish_reason=read_str(raw, "status"),
            request_id=read_str(raw, "id"),
        )


def _message_texts(raw: object) -> list[str]:
    texts: list[str] = []
    for item in read_sequence(raw, "output"):
        if (read_str(item, "type") or "").lower() != "message":
            continue
        for part in read_sequence(item, "content"):
            chunk = read_str(part, "text")
            if chunk and (read_str(part, "type") or "").lower() in _TEXT_PART_TYPES:
                texts.append(chunk)
    return texts


def _first_int(source: object, *keys: str) -> int:
    for key in keys:
        value = read_int(source, key)
        if value is not None:
            return value
    return 0


__all__ = ["OpenAIProvider"]
