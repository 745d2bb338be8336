"""
coursegen-repair — model registry and repack model selection

File: src/coursegen_repair/providers/model_registry.py
Last updated: 2026-02-11

Purpose
- Known generation models with their provider and cost tier.
- Deterministic choice of the cheapest available model for Layer 2 repack.

Functional requirements
- Provider resolution by id prefix first, registry lookup second; unknown ids raise KeyError.
- Selection walks a fixed cheapest-first preference list.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Final


class ProviderName(StrEnum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


class ModelTier(StrEnum):
    PREMIUM = "premium"
    BALANCED = "balanced"
    FAST = "fast"


@dataclass(frozen=True, slots=True)
class ModelInfo:
    id: str
    label: str
    provider: ProviderName
    tier: ModelTier


MODEL_REGISTRY: Final[tuple[ModelInfo, ...]] = (
    ModelInfo("claude-opus-4-6", "Claude Opus 4.6", ProviderName.ANTHROPIC, ModelTier.PREMIUM),
    ModelInfo(
        "claude-sonnet-4-5-20250929",
        "Claude Sonnet 4.5",
        ProviderName.ANTHROPIC,
        ModelTier.BALANCED,
    ),
    ModelInfo(
        "claude-haiku-4-5-20251001",
        "Claude Haiku 4.5",
        ProviderName.ANTHROPIC,
        ModelTier.FAST,
    ),
    ModelInfo("gpt-5.2", "GPT-5.2", ProviderName.OPENAI, ModelTier.PREMIUM),
    ModelInfo("gpt-5-mini", "GPT-5 Mini", ProviderName.OPENAI, ModelTier.FAST),
    ModelInfo("o3-mini", "o3-mini", ProviderName.OPENAI, ModelTier.BALANCED),
    ModelInfo("gemini-3-pro-preview", "Gemini 3 Pro", ProviderName.GOOGLE, ModelTier.PREMIUM),
    ModelInfo("gemini-2.5-pro", "Gemini 2.5 Pro", ProviderName.GOOGLE, ModelTier.BALANCED),
    ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash", ProviderName.GOOGLE, ModelTier.FAST),
)

# Cheapest first.
REPACK_MODEL_PREFERENCE: Final[tuple[str, ...]] = (
    "claude-haiku-4-5-20251001",
    "gpt-5-mini",
    "gemini-2.5-flash",
    "claude-sonnet-4-5-20250929",
    "o3-mini",
    "gemini-2.5-pro",
    "claude-opus-4-6",
    "gpt-5.2",
    "gemini-3-pro-preview",
)

_PREFIXES: Final[tuple[tuple[str, ProviderName], ...]] = (
    ("claude-", ProviderName.ANTHROPIC),
    ("gpt-", ProviderName.OPENAI),
    ("o1-", ProviderName.OPENAI),
    ("o3-", ProviderName.OPENAI),
    ("o4-", ProviderName.OPENAI),
    ("gemini-", ProviderName.GOOGLE),
)

_BY_ID: Final[dict[str, ModelInfo]] = {entry.id: entry for entry in MODEL_REGISTRY}


def get_model(model_id: str) -> ModelInfo | None:
    return _BY_ID.get(model_id)


def provider_for_model(model_id: str) -> ProviderName:
    """Resolve the provider serving ``model_id``; raises ``KeyError`` when unknown."""

    for prefix, provider in _PREFIXES:
        if model_id.startswith(prefix):
            return provider
    entry = _BY_ID.get(model_id)
    if entry is None:
        raise KeyError(f"unknown model provider for model: {model_id}")
    return entry.provider


def select_repack_model(available_providers: Iterable[str]) -> str | None:
    """Return the cheapest preferred model whose provider is available."""

    available = {str(name).strip().lower() for name in available_providers}
    for model_id in REPACK_MODEL_PREFERENCE:
        entry = _BY_ID.get(model_id)
        if entry is not None and entry.provider.value in available:
            return model_id
    return None


__all__ = [
    "MODEL_REGISTRY",
    "REPACK_MODEL_PREFERENCE",
    "ModelInfo",
    "ModelTier",
    "ProviderName",
    "get_model",
    "provider_for_model",
    "select_repack_model",
]
