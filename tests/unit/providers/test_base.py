"""Provider request/response models, error taxonomy, retries and the adapter registry."""

from __future__ import annotations

import pytest

from coursegen_repair.providers.base import (
    BackoffConfig,
    ProviderAuthenticationError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderRequest,
    ProviderResponse,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    StructuredOutputDefinition,
    map_sdk_exception,
    run_with_retries,
)


class RateLimitError(Exception):
    pass


class _StatusError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def test_request_validation() -> None:
    with pytest.raises(ValueError, match="model cannot be empty"):
        ProviderRequest(model="  ", user_prompt="x")
    with pytest.raises(ValueError, match="max_tokens"):
        ProviderRequest(model="gpt-5-mini", user_prompt="x", max_tokens=0)
    with pytest.raises(ValueError, match="temperature"):
        ProviderRequest(model="gpt-5-mini", user_prompt="x", temperature=3.0)

    request = ProviderRequest(
        model=" gpt-5-mini ",
        user_prompt="x",
        structured_output=StructuredOutputDefinition(name="lesson", strict=False),
        max_tokens=100,
    )
    assert request.model == "gpt-5-mini"
    assert request.structured_output == StructuredOutputDefinition(name="lesson", strict=False)
    with pytest.raises(ValueError, match="structured output name"):
        StructuredOutputDefinition(name=" ")


def test_response_output_text_prefers_raw_text() -> None:
    raw = ProviderResponse(model="m", raw_text='{"a": 1}', structured_output={"a": 2})
    structured_only = ProviderResponse(model="m", structured_output={"título": 1})

    assert raw.output_text == '{"a": 1}'
    assert structured_only.output_text == '{"título": 1}'
    with pytest.raises(ValueError, match="raw_text or structured_output"):
        ProviderResponse(model="m")


def test_error_string_is_machine_readable() -> None:
    error = ProviderRateLimitError("slow   down\n please", provider="openai")

    assert str(error) == (
        "provider=openai code=rate_limit retryable=true http_status=429 detail=slow down please"
    )
    assert error.retryable
    assert not ProviderUnavailableError("no sdk").retryable
    assert str(ProviderServiceError("", retryable=False)) == (
        "provider=provider code=service retryable=false detail=unknown error"
    )


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (_StatusError("denied", 401), ProviderAuthenticationError),
        (_StatusError("busy", 429), ProviderRateLimitError),
        (RateLimitError("busy"), ProviderRateLimitError),
        (TimeoutError("slow"), ProviderTimeoutError),
        (_StatusError("bad", 422), ProviderInvalidRequestError),
        (_StatusError("down", 503), ProviderServiceError),
        (RuntimeError("weird"), ProviderServiceError),
    ],
)
def test_map_sdk_exception(exc: Exception, expected: type) -> None:
    mapped = map_sdk_exception(exc, provider="anthropic")

    assert isinstance(mapped, expected)
    assert mapped.provider == "anthropic"


def test_backoff_delays_are_bounded() -> None:
    config = BackoffConfig(max_retries=5, initial_delay_seconds=1.0, max_delay_seconds=3.0)

    delays = [config.delay_for(n) for n in (1, 2, 3)]

    assert delays == [1.0, 2.0, 3.0]
    with pytest.raises(ValueError):
        config.delay_for(0)
    with pytest.raises(ValueError):
        BackoffConfig(initial_delay_seconds=5.0, max_delay_seconds=1.0)


@pytest.mark.asyncio
async def test_run_with_retries_retries_only_retryable_errors() -> None:
    attempts: list[int] = []
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise RateLimitError("busy")
        return "ok"

    result = await run_with_retries(
        flaky,
        map_exception=lambda exc: map_sdk_exception(exc, provider="openai"),
        backoff=BackoffConfig(max_retries=2),
        sleep=fake_sleep,
    )

    assert result == "ok"
    assert len(attempts) == 3
    assert sleeps == [0.25, 0.5]


@pytest.mark.asyncio
async def test_run_with_retries_raises_mapped_error_without_retrying() -> None:
    attempts: list[int] = []

    async def denied() -> str:
        attempts.append(1)
        raise _StatusError("denied", 403)

    with pytest.raises(ProviderAuthenticationError) as excinfo:
        await run_with_retries(
            denied,
            map_exception=lambda exc: map_sdk_exception(exc, provider="openai"),
            backoff=BackoffConfig(max_retries=3),
        )

    assert len(attempts) == 1
    assert isinstance(excinfo.value.__cause__, _StatusError)


def test_registry_lookup_is_case_insensitive() -> None:
    registry = ProviderRegistry()
    sentinel = _Adapter()
    registry.register("Anthropic", lambda: sentinel)

    assert registry.names() == ("anthropic",)
    assert registry.get("ANTHROPIC") is sentinel
    with pytest.raises(ValueError, match="already registered"):
        registry.register("anthropic", lambda: sentinel)
    with pytest.raises(ProviderUnavailableError) as excinfo:
        registry.get("google")
    assert excinfo.value.code == "unavailable"


def test_registry_rejects_non_adapter_factories() -> None:
    registry = ProviderRegistry()
    registry.register("broken", lambda: object())  # type: ignore[arg-type,return-value]

    with pytest.raises(TypeError, match="invalid adapter"):
        registry.get("broken")


class _Adapter:
    async def send(self, request: ProviderRequest) -> ProviderResponse:
        return ProviderResponse(model=request.model, raw_text="{}")
