"""Provider registry wiring from configured API-key env var names."""

from __future__ import annotations

import os
from collections.abc import Mapping

from coursegen_repair.providers.anthropic_adapter import AnthropicProvider
from coursegen_repair.providers.base import BackoffConfig, ProviderRegistry
from coursegen_repair.providers.model_registry import ProviderName
from coursegen_repair.providers.openai_adapter import OpenAIProvider

DEFAULT_API_KEY_ENVS: dict[str, str] = {
    ProviderName.ANTHROPIC.value: "ANTHROPIC_API_KEY",
    ProviderName.OPENAI.value: "OPENAI_API_KEY",
    ProviderName.GOOGLE.value: "GOOGLE_AI_API_KEY",
}


def available_providers(
    api_key_envs: Mapping[str, str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> tuple[str, ...]:
    """Providers whose API-key env var holds a non-empty value, in stable order."""

    envs = dict(DEFAULT_API_KEY_ENVS)
    if api_key_envs is not None:
        envs.update(api_key_envs)
    source = os.environ if environ is None else environ
    return tuple(
        name for name in sorted(envs) if (source.get(envs[name]) or "").strip()
    )


def build_provider_registry(
    api_key_envs: Mapping[str, str] | None = None,
    *,
    max_retries: int = 0,
    timeout_seconds: float | None = None,
) -> ProviderRegistry:
    """Register the adapters that exist; Google stays unregistered and resolves as unavailable."""

    envs = dict(DEFAULT_API_KEY_ENVS)
    if api_key_envs is not None:
        envs.update(api_key_envs)
    backoff = BackoffConfig(max_retries=max_retries)

    registry = ProviderRegistry()
    registry.register(
        ProviderName.ANTHROPIC.value,
        lambda: AnthropicProvider(
            api_key_env=envs[ProviderName.ANTHROPIC.value],
            timeout_seconds=timeout_seconds,
            backoff=backoff,
        ),
    )
    registry.register(
        ProviderName.OPENAI.value,
        lambda: OpenAIProvider(
            api_key_env=envs[ProviderName.OPENAI.value],
            timeout_seconds=timeout_seconds,
            backoff=backoff,
        ),
    )
    return registry


__all__ = ["DEFAULT_API_KEY_ENVS", "available_providers", "build_provider_registry"]
