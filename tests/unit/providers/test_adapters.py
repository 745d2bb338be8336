"""
coursegen-repair — unit tests for the Anthropic and OpenAI adapters

File: tests/unit/providers/test_adapters.py
Last updated: 2026-02-11

Purpose
- Validate payload shape and response normalization against injected fake clients,
  so no SDK or network is needed.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from coursegen_repair.providers.anthropic_adapter import AnthropicProvider
from coursegen_repair.providers.base import (
    BackoffConfig,
    ProviderAuthenticationError,
    ProviderRequest,
    ProviderResponseError,
    ProviderUnavailableError,
    StructuredOutputDefinition,
)
from coursegen_repair.providers.factory import build_provider_registry
from coursegen_repair.providers.openai_adapter import OpenAIProvider

SCHEMA = {"type": "object", "properties": {"title": {"type": "string"}}}


def _request(model: str, *, strict: bool = True) -> ProviderRequest:
    return ProviderRequest(
        model=model,
        user_prompt="Create a lesson",
        system_prompt="You write courses.",
        structured_output=StructuredOutputDefinition(
            name="lesson", json_schema=SCHEMA, strict=strict
        ),
        max_tokens=512,
    )


class _FakeCreate:
    def __init__(self, *responses: object) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, object]] = []

    async def create(self, **kwargs: object) -> object:
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.mark.asyncio
async def test_anthropic_forces_tool_and_serializes_tool_input() -> None:
    messages = _FakeCreate(
        {
            "id": "msg_1",
            "model": "claude-haiku-4-5-20251001",
            "stop_reason": "tool_use",
            "content": [
                {"type": "text", "text": "thinking"},
                {"type": "tool_use", "name": "lesson", "input": {"parameter": {"title": "X"}}},
            ],
            "usage": {"input_tokens": 10, "output_tokens": 4},
        }
    )
    provider = AnthropicProvider(client=SimpleNamespace(messages=messages))

    response = await provider.send(_request("claude-haiku-4-5-20251001"))

    call = messages.calls[0]
    assert call["tool_choice"] == {"type": "tool", "name": "lesson"}
    assert call["tools"] == [{"name": "lesson", "input_schema": SCHEMA}]
    assert call["system"] == "You write courses."
    assert call["max_tokens"] == 512
    assert response.raw_text == '{"parameter": {"title": "X"}}'
    assert response.structured_output == {"parameter": {"title": "X"}}
    assert response.usage.total_tokens == 14
    assert response.finish_reason == "tool_use"
    assert response.request_id == "msg_1"


@pytest.mark.asyncio
async def test_anthropic_empty_response_is_a_response_error() -> None:
    messages = _FakeCreate({"model": "claude-haiku-4-5-20251001", "content": []})
    provider = AnthropicProvider(
        client=SimpleNamespace(messages=messages), backoff=BackoffConfig(max_retries=0)
    )

    with pytest.raises(ProviderResponseError):
        await provider.send(_request("claude-haiku-4-5-20251001"))


@pytest.mark.asyncio
async def test_anthropic_missing_key_is_authentication_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    pytest.importorskip("anthropic")
    monkeypatch.delenv("COURSEGEN_TEST_MISSING_KEY", raising=False)
    provider = AnthropicProvider(
        api_key_env="COURSEGEN_TEST_MISSING_KEY", backoff=BackoffConfig(max_retries=0)
    )

    with pytest.raises(ProviderAuthenticationError, match="COURSEGEN_TEST_MISSING_KEY"):
        await provider.send(_request("claude-haiku-4-5-20251001"))


@pytest.mark.asyncio
async def test_openai_uses_json_schema_format_and_returns_text_verbatim() -> None:
    responses = _FakeCreate(
        {
            "id": "resp_1",
            "model": "gpt-5-mini",
            "status": "completed",
            "output": [
                {"type": "reasoning", "content": []},
                {
                    "type": "message",
                    "content": [{"type": "output_text", "text": '{"title": “X”}'}],
                },
            ],
            "usage": {"prompt_tokens": 7, "completion_tokens": 3},
        }
    )
    provider = OpenAIProvider(client=SimpleNamespace(responses=responses))

    response = await provider.send(_request("gpt-5-mini", strict=False))

    call = responses.calls[0]
    assert call["input"] == "Create a lesson"
    assert call["instructions"] == "You write courses."
    assert call["max_output_tokens"] == 512
    assert call["text"] == {
        "format": {"type": "json_schema", "name": "lesson", "schema": SCHEMA, "strict": False}
    }
    assert response.raw_text == '{"title": “X”}'
    assert response.usage.total_tokens == 10
    assert response.finish_reason == "completed"


@pytest.mark.asyncio
async def test_openai_retries_transient_failures() -> None:
    class APIConnectionTimeout(Exception):
        pass

    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    responses = _FakeCreate(
        APIConnectionTimeout("read timed out"),
        {"model": "gpt-5-mini", "output_text": '{"title": "X"}'},
    )
    provider = OpenAIProvider(
        client=SimpleNamespace(responses=responses),
        backoff=BackoffConfig(max_retries=1),
        sleep=fake_sleep,
    )

    response = await provider.send(_request("gpt-5-mini"))

    assert response.raw_text == '{"title": "X"}'
    assert len(responses.calls) == 2
    assert sleeps == [0.25]


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError, match="timeout_seconds"):
        OpenAIProvider(timeout_seconds=0)
    with pytest.raises(ValueError, match="timeout_seconds"):
        AnthropicProvider(timeout_seconds=-1)


def test_factory_registers_available_adapters_only() -> None:
    registry = build_provider_registry({"anthropic": "MY_KEY"}, max_retries=1)

    assert registry.names() == ("anthropic", "openai")
    assert isinstance(registry.get("anthropic"), AnthropicProvider)
    assert isinstance(registry.get("openai"), OpenAIProvider)
    assert "google" not in registry.names()


@pytest.mark.asyncio
async def test_missing_sdk_is_unavailable_and_not_retried() -> None:
    class _UninstalledSDKProvider(OpenAIProvider):
        sdk_module = "coursegen_repair_uninstalled_sdk"

    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    provider = _UninstalledSDKProvider(api_key="sk-test", sleep=fake_sleep)

    with pytest.raises(ProviderUnavailableError, match="SDK is not installed") as excinfo:
        await provider.send(_request("gpt-5-mini"))

    assert excinfo.value.provider == "openai"
    assert "sk-test" not in str(excinfo.value)
    assert sleeps == []
