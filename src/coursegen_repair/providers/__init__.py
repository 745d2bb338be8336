"""
coursegen-repair — provider adapters and shared provider API

File: src/coursegen_repair/providers/__init__.py
Last updated: 2026-02-11

Purpose
- Provider adapters (Anthropic, OpenAI) plus the model registry used to pick a repack model.

Non-functional requirements
- Must never log secrets or raw API keys.
"""

from coursegen_repair.providers.anthropic_adapter import AnthropicProvider
from coursegen_repair.providers.base import (
    BackoffConfig,
    BaseProvider,
    ProviderAuthenticationError,
    ProviderError,
    ProviderInvalidRequestError,
    ProviderProtocol,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderRequest,
    ProviderResponse,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ProviderUsage,
    StructuredOutputDefinition,
    map_sdk_exception,
    run_with_retries,
)
from coursegen_repair.providers.factory import (
    DEFAULT_API_KEY_ENVS,
    available_providers,
    build_provider_registry,
)
from coursegen_repair.providers.model_registry import (
    MODEL_REGISTRY,
    REPACK_MODEL_PREFERENCE,
    ModelInfo,
    ModelTier,
    ProviderName,
    get_model,
    provider_for_model,
    select_repack_model,
)
from coursegen_repair.providers.openai_adapter import OpenAIProvider
from coursegen_repair.providers.sdk import SDKProvider

__all__ = [
    "DEFAULT_API_KEY_ENVS",
    "MODEL_REGISTRY",
    "REPACK_MODEL_PREFERENCE",
    "AnthropicProvider",
    "BackoffConfig",
    "BaseProvider",
    "ModelInfo",
    "ModelTier",
    "OpenAIProvider",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderInvalidRequestError",
    "ProviderName",
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
    "SDKProvider",
    "StructuredOutputDefinition",
    "available_providers",
    "build_provider_registry",
    "get_model",
    "map_sdk_exception",
    "provider_for_model",
    "run_with_retries",
    "select_repack_model",
]
