"""
coursegen-repair — shared plumbing for vendor-SDK adapters

File: src/coursegen_repair/providers/sdk.py
Last updated: 2026-02-18

Purpose
- Everything an adapter needs that is not vendor specific: lazy SDK import, API-key
  lookup, client construction, call timing and bounded retries.

Functional requirements
- The SDK is imported on first use, so a missing optional extra only fails the call
  that needs it, as ``ProviderUnavailableError``.
- An injected client skips SDK import and key lookup entirely.
- A missing key surfaces as ``ProviderAuthenticationError`` naming the env variable,
  never the key itself.
"""

from __future__ import annotations

import abc
import asyncio
import importlib
import os
import time
from typing import Any, ClassVar

from coursegen_repair.providers.base import (
    BackoffConfig,
    BaseProvider,
    ProviderAuthenticationError,
    ProviderRequest,
    ProviderResponse,
    ProviderUnavailableError,
    SleepFn,
    map_sdk_exception,
    run_with_retries,
)


class SDKProvider(BaseProvider):
    """Adapter over an async vendor client exposing ``<endpoint>.create(**kwargs)``."""

    sdk_module: ClassVar[str]
    client_class: ClassVar[str]
    endpoint: ClassVar[str]
    default_api_key_env: ClassVar[str]
    vendor: ClassVar[str]

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_key_env: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: Any | None = None,
        backoff: BackoffConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._api_key = api_key
        self._api_key_env = api_key_env or self.default_api_key_env
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._backoff = backoff or BackoffConfig()
        self._sleep = sleep

    @abc.abstractmethod
    def build_payload(self, request: ProviderRequest) -> dict[str, object]:
        """Keyword arguments for the endpoint's ``create`` call."""

    @abc.abstractmethod
    def parse_response(
        self, raw: object, *, request: ProviderRequest, latency_ms: int
    ) -> ProviderResponse:
        """Normalize an SDK response object (or plain dict)."""

    async def send(self, request: ProviderRequest) -> ProviderResponse:
        payload = self.build_payload(request)

        async def attempt() -> ProviderResponse:
            create = getattr(self._connected(), self.endpoint).create
            started = time.perf_counter()
            raw = await create(**payload)
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            return self.parse_response(raw, request=request, latency_ms=elapsed_ms)

        return await run_with_retries(
            attempt,
            map_exception=lambda exc: map_sdk_exception(exc, provider=self.provider_name),
            backoff=self._backoff,
            sleep=self._sleep,
        )

    def _connected(self) -> Any:
        if self._client is None:
            self._client = self._new_client()
        return self._client

    def _new_client(self) -> Any:
        try:
            module = importlib.import_module(self.sdk_module)
        except ImportError as exc:
            raise ProviderUnavailableError(
                f"{self.sdk_module} SDK is not installed", provider=self.provider_name
            ) from exc
        client_type = getattr(module, self.client_class, None)
        if client_type is None:
            raise ProviderUnavailableError(
                f"{self.sdk_module} SDK does not expose {self.client_class}",
                provider=self.provider_name,
            )

        options: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            options["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            options["timeout"] = self._timeout_seconds
        client = client_type(**options)
        if not hasattr(client, self.endpoint):
            raise ProviderUnavailableError(
                f"{self.client_class} has no {self.endpoint} API", provider=self.provider_name
            )
        return client

    def _resolve_api_key(self) -> str:
        if self._api_key and self._api_key.strip():
            return self._api_key
        value = os.environ.get(self._api_key_env, "").strip()
        if not value:
            raise ProviderAuthenticationError(
                f"missing {self.vendor} API key; set {self._api_key_env}",
                provider=self.provider_name,
                http_status=401,
            )
        return value


__all__ = ["SDKProvider"]
