"""
forge-orchestrator — provider adapters

File: src/forge_orchestrator/synthesis_plane/providers/__init__.py
Last updated: 2026-10-19

Purpose
- Public surface for provider adapters, the error taxonomy, backoff math and the
  response normalizer.
- ``build_provider_registry`` wires the configured adapters into a prefix-routed registry.
"""

from __future__ import annotations

from collections.abc import Mapping

from forge_orchestrator.synthesis_plane.providers.anthropic_adapter import AnthropicProvider
from forge_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    BaseProvider,
    ProviderAuthenticationError,
    ProviderContextLengthError,
    ProviderError,
    ProviderFactory,
    ProviderInvalidRequestError,
    ProviderProtocol,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    ToolArgumentsError,
    compute_backoff_delay,
    estimate_cost,
    normalize_model_id,
    parse_tool_arguments,
)
from forge_orchestrator.synthesis_plane.providers.normalize import normalize_response
from forge_orchestrator.synthesis_plane.providers.openai_adapter import OpenAIProvider


def build_provider_registry(providers_config: Mapping[str, object]) -> ProviderRegistry:
    """Register both vendor adapters from the ``[providers]`` config section.

    Adapters are constructed lazily on first use, so a missing key or SDK only fails
    when a model routed to that provider is actually invoked.
    """

    openai_cfg = _section(providers_config, "openai")
    anthropic_cfg = _section(providers_config, "anthropic")

    registry = ProviderRegistry()
    registry.register(
        "openai",
        lambda: OpenAIProvider(
            api_key_env=_optional_str(openai_cfg.get("api_key_env")) or "OPENAI_API_KEY",
            base_url=_optional_str(openai_cfg.get("base_url")),
            timeout_seconds=_optional_float(openai_cfg.get("timeout_seconds")),
        ),
    )
    registry.register(
        "anthropic",
        lambda: AnthropicProvider(
            api_key_env=_optional_str(anthropic_cfg.get("api_key_env")) or "ANTHROPIC_API_KEY",
            base_url=_optional_str(anthropic_cfg.get("base_url")),
            timeout_seconds=_optional_float(anthropic_cfg.get("timeout_seconds")),
        ),
    )
    return registry


def _section(config: Mapping[str, object], key: str) -> Mapping[str, object]:
    value = config.get(key)
    return value if isinstance(value, Mapping) else {}


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _optional_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    return float(value)


__all__ = [
    "AnthropicProvider",
    "BackoffConfig",
    "BaseProvider",
    "OpenAIProvider",
    "ProviderAuthenticationError",
    "ProviderContextLengthError",
    "ProviderError",
    "ProviderFactory",
    "ProviderInvalidRequestError",
    "ProviderProtocol",
    "ProviderRateLimitError",
    "ProviderRegistry",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ToolArgumentsError",
    "build_provider_registry",
    "compute_backoff_delay",
    "estimate_cost",
    "normalize_model_id",
    "normalize_response",
    "parse_tool_arguments",
]
