"""Model to provider resolution and cheapest-first repack model choice."""

from __future__ import annotations

import pytest

from coursegen_repair.providers.factory import available_providers
from coursegen_repair.providers.model_registry import (
    MODEL_REGISTRY,
    REPACK_MODEL_PREFERENCE,
    ModelTier,
    ProviderName,
    get_model,
    provider_for_model,
    select_repack_model,
)


@pytest.mark.parametrize(
    ("model_id", "provider"),
    [
        ("claude-haiku-4-5-20251001", ProviderName.ANTHROPIC),
        ("claude-future-9", ProviderName.ANTHROPIC),
        ("gpt-5-mini", ProviderName.OPENAI),
        ("o3-mini", ProviderName.OPENAI),
        ("gemini-2.5-flash", ProviderName.GOOGLE),
    ],
)
def test_provider_for_model(model_id: str, provider: ProviderName) -> None:
    assert provider_for_model(model_id) is provider


def test_unknown_model_raises_key_error() -> None:
    with pytest.raises(KeyError, match="unknown model provider"):
        provider_for_model("llama-3")


def test_preference_list_covers_registry() -> None:
    assert sorted(REPACK_MODEL_PREFERENCE) == sorted(entry.id for entry in MODEL_REGISTRY)
    first = get_model(REPACK_MODEL_PREFERENCE[0])
    assert first is not None and first.tier is ModelTier.FAST


@pytest.mark.parametrize(
    ("available", "expected"),
    [
        (("anthropic", "openai", "google"), "claude-haiku-4-5-20251001"),
        (("openai",), "gpt-5-mini"),
        ((" Google ",), "gemini-2.5-flash"),
        ((), None),
    ],
)
def test_select_repack_model(available: tuple[str, ...], expected: str | None) -> None:
    assert select_repack_model(available) == expected


def test_available_providers_reads_configured_env_names() -> None:
    environ = {"ANTHROPIC_API_KEY": "  ", "MY_OPENAI": "sk-test", "GOOGLE_AI_API_KEY": "g"}

    assert available_providers({"openai": "MY_OPENAI"}, environ=environ) == ("google", "openai")
    assert available_providers(environ={}) == ()
