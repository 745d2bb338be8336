"""
coursegen-repair — provider request/response models and error taxonomy

File: src/coursegen_repair/providers/base.py
Last updated: 2026-02-18

Purpose
- The provider-neutral shapes exchanged between the repair pipeline and a model adapter:
  a structured-output request, a normalized response with usage, and one error family.

What should be included in this file
- Request fields: model, prompts, structured-output contract, token limit.
- Response fields: raw text, structured output, token usage, latency.
- Error classes carrying a stable ``code`` and a ``retryable`` flag.
- The bounded retry loop and SDK-object readers shared by adapters.

Non-functional requirements
- Adding a provider must not touch the repair pipeline.
"""

from __future__ import annotations

import abc
import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, TypeAlias, TypeVar, runtime_checkable

from coursegen_repair.schema.descriptor import JSONValue

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]

_ResultT = TypeVar("_ResultT")


def _required_text(value: object, label: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{label} must be a string")
    text = value.strip()
    if not text:
        raise ValueError(f"{label} cannot be empty")
    return text


def _one_line(value: object) -> str:
    return " ".join(str(value).split())


@dataclass(frozen=True, slots=True)
class StructuredOutputDefinition:
    """Named JSON schema the model is asked to fill."""

    name: str
    json_schema: Mapping[str, JSONValue] = field(default_factory=dict)
    strict: bool = True
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _required_text(self.name, "structured output name"))
        object.__setattr__(self, "json_schema", dict(self.json_schema))


@dataclass(frozen=True, slots=True)
class ProviderUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0

    def __post_init__(self) -> None:
        for name in ("input_tokens", "output_tokens", "total_tokens", "latency_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"ProviderUsage.{name} must be a non-negative integer")


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    model: str
    user_prompt: str
    system_prompt: str = ""
    structured_output: StructuredOutputDefinition | None = None
    max_tokens: int | None = None
    temperature: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "model", _required_text(self.model, "model"))
        if not isinstance(self.user_prompt, str) or not isinstance(self.system_prompt, str):
            raise TypeError("prompts must be strings")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if self.temperature is not None and not 0.0 <= self.temperature <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    """Normalized adapter result.

    ``raw_text`` is the model's text exactly as produced. For structured calls
    adapters place the serialized structured payload here, so downstream repair
    sees what the model emitted rather than an SDK-parsed approximation.
    """

    model: str
    raw_text: str = ""
    structured_output: JSONValue | None = None
    usage: ProviderUsage = field(default_factory=ProviderUsage)
    finish_reason: str | None = None
    request_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "model", _required_text(self.model, "model"))
        if not self.raw_text and self.structured_output is None:
            raise ValueError("ProviderResponse must include raw_text or structured_output")

    @property
    def output_text(self) -> str:
        """Text to parse for a structured result."""

        if self.raw_text:
            return self.raw_text
        return json.dumps(self.structured_output, ensure_ascii=False)


class BaseProvider(abc.ABC):
    provider_name: str = "provider"

    @abc.abstractmethod
    async def send(self, request: ProviderRequest) -> ProviderResponse:
        """Send one request and return a normalized response."""


@runtime_checkable
class ProviderProtocol(Protocol):
    async def send(self, request: ProviderRequest) -> ProviderResponse: ...


class ProviderError(RuntimeError):
    """Provider failure rendered as ``provider=.. code=.. retryable=.. detail=..``."""

    code: ClassVar[str] = "error"
    default_retryable: ClassVar[bool] = False
    default_http_status: ClassVar[int | None] = None

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.provider = _required_text(provider, "provider")
        self.detail = _one_line(detail) or "unknown error"
        self.retryable = self.default_retryable if retryable is None else retryable
        self.http_status = http_status if http_status is not None else self.default_http_status
        status = "" if self.http_status is None else f" http_status={self.http_status}"
        super().__init__(
            f"provider={self.provider} code={self.code} "
            f"retryable={str(self.retryable).lower()}{status} detail={self.detail}"
        )


class ProviderUnavailableError(ProviderError):
    """SDK missing, key missing, or adapter not registered."""

    code = "unavailable"


class ProviderAuthenticationError(ProviderError):
    code = "auth"


class ProviderInvalidRequestError(ProviderError):
    code = "invalid_request"


class ProviderRateLimitError(ProviderError):
    code = "rate_limit"
    default_retryable = True
    default_http_status = 429


class ProviderTimeoutError(ProviderError):
    code = "timeout"
    default_retryable = True


class ProviderServiceError(ProviderError):
    code = "service"
    default_retryable = True


class ProviderResponseError(ProviderError):
    """The call succeeded but the payload had nothing usable in it."""

    code = "response_invalid"


_INVALID_REQUEST_STATUSES = frozenset({400, 404, 409, 413, 422})


def map_sdk_exception(exc: Exception, *, provider: str) -> ProviderError:
    """Classify an SDK or transport exception by HTTP status, then by class name."""

    if isinstance(exc, ProviderError):
        return exc

    status = _status_code(exc)
    kind = type(exc).__name__.lower()
    detail = _one_line(exc) or type(exc).__name__

    if status in {401, 403} or "auth" in kind or "permission" in kind:
        return ProviderAuthenticationError(detail, provider=provider, http_status=status)
    if status == 429 or "ratelimit" in kind:
        return ProviderRateLimitError(detail, provider=provider, http_status=status)
    if isinstance(exc, TimeoutError) or "timeout" in kind:
        return ProviderTimeoutError(detail, provider=provider)
    if status in _INVALID_REQUEST_STATUSES or "badrequest" in kind or "invalidrequest" in kind:
        return ProviderInvalidRequestError(detail, provider=provider, http_status=status)
    return ProviderServiceError(detail, provider=provider, http_status=status)


def _status_code(exc: BaseException) -> int | None:
    for holder in (exc, getattr(exc, "response", None)):
        for key in ("status_code", "status", "http_status"):
            value = getattr(holder, key, None)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
    return None


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Exponential backoff capped at ``max_delay_seconds``."""

    max_retries: int = 2
    initial_delay_seconds: float = 0.25
    multiplier: float = 2.0
    max_delay_seconds: float = 4.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0 <= self.initial_delay_seconds <= self.max_delay_seconds:
            raise ValueError("initial_delay_seconds must be within [0, max_delay_seconds]")

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""

        if retry_number <= 0:
            raise ValueError("retry_number must be > 0")
        delay = self.initial_delay_seconds * self.multiplier ** (retry_number - 1)
        return min(delay, self.max_delay_seconds)


async def run_with_retries(
    operation: Callable[[], Awaitable[_ResultT]],
    *,
    map_exception: Callable[[Exception], ProviderError],
    backoff: BackoffConfig,
    sleep: SleepFn = asyncio.sleep,
) -> _ResultT:
    """Await ``operation``, retrying while the mapped error is retryable."""

    retries = 0
    while True:
        try:
            return await operation()
        except Exception as exc:  # noqa: BLE001
            mapped = exc if isinstance(exc, ProviderError) else map_exception(exc)
            if not mapped.retryable or retries >= backoff.max_retries:
                if mapped is exc:
                    raise
                raise mapped from exc
            retries += 1
            await sleep(backoff.delay_for(retries))


class ProviderRegistry:
    """Adapter factories keyed by lower-cased provider name."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], ProviderProtocol]] = {}

    def register(
        self,
        name: str,
        factory: Callable[[], ProviderProtocol],
        *,
        overwrite: bool = False,
    ) -> None:
        key = _required_text(name, "provider name").lower()
        if key in self._factories and not overwrite:
            raise ValueError(f"provider already registered: {key}")
        self._factories[key] = factory

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories))

    def get(self, name: str) -> ProviderProtocol:
        key = _required_text(name, "provider name").lower()
        factory = self._factories.get(key)
        if factory is None:
            raise ProviderUnavailableError("provider is not registered", provider=key)
        adapter = factory()
        if not isinstance(adapter, ProviderProtocol):
            raise TypeError(f"provider factory returned invalid adapter for {key}")
        return adapter


# SDK responses arrive as pydantic models or plain dicts depending on the client version.


def read_value(source: object, key: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


def read_sequence(source: object, key: str) -> tuple[object, ...]:
    value = read_value(source, key)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return tuple(value)
    return ()


def read_str(source: object, key: str) -> str | None:
    value = read_value(source, key)
    return value if isinstance(value, str) and value.strip() else None


def read_int(source: object, key: str) -> int | None:
    value = read_value(source, key)
    return value if isinstance(value, int) and not isinstance(value, bool) else None


__all__ = [
    "BackoffConfig",
    "BaseProvider",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderInvalidRequestError",
    "ProviderProtocol",
    "ProviderRateLimitError",
    "ProviderRegistry",
    "ProviderRequest",
    "ProviderResponse",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ProviderUsage",
    "SleepFn",
    "StructuredOutputDefinition",
    "map_sdk_exception",
    "read_int",
    "read_sequence",
    "read_str",
    "read_value",
    "run_with_retries",
]
