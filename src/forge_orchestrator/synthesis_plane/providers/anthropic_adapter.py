"""
forge-orchestrator — Anthropic provider adapter

File: src/forge_orchestrator/synthesis_plane/providers/anthropic_adapter.py
Last updated: 2026-10-19

Purpose
- Send one ``InvocationRequest`` through the Anthropic Messages API.

Functional requirements
- The SDK is imported lazily; a missing SDK raises ``ProviderUnavailableError``.
- Requests are streamed and the assembled final ``Message`` is returned; large
  ``max_tokens`` values are refused by the SDK on non-streaming calls.
- ``normalize_response`` reads the ``content`` blocks of that message.
- SDK exceptions are mapped onto the normalized taxonomy.

Non-functional requirements
- No secrets in logs or error details.
"""

from __future__ import annotations

import importlib
import os
from contextlib import AbstractAsyncContextManager
from typing import Protocol, cast

from forge_orchestrator.domain.models import InvocationRequest, ToolDefinition
from forge_orchestrator.synthesis_plane.providers.base import (
    BaseProvider,
    ProviderAuthenticationError,
    ProviderError,
    ProviderUnavailableError,
    map_sdk_exception,
)

_DEFAULT_MAX_TOKENS = 4096


class _AnthropicMessageStream(Protocol):
    async def get_final_message(self) -> object: ...


class _AnthropicMessagesAPI(Protocol):
    def stream(
        self, **kwargs: object
    ) -> AbstractAsyncContextManager[_AnthropicMessageStream]: ...


class _AnthropicClient(Protocol):
    messages: _AnthropicMessagesAPI


class AnthropicProvider(BaseProvider):
    """Anthropic messages adapter with optional SDK dependency and injected client support."""

    provider_name = "anthropic"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_key_env: str | None = "ANTHROPIC_API_KEY",
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _AnthropicClient | None = None,
    ) -> None:
        self._api_key = api_key.strip() if api_key and api_key.strip() else None
        self._api_key_env = api_key_env
        self._base_url = base_url or None

        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._client = client

    async def send(self, request: InvocationRequest) -> object:
        payload = self._build_payload(request)
        client = self._ensure_client()
        try:
            async with client.messages.stream(**payload) as stream:
                return await stream.get_final_message()
        except ProviderError:
            raise
        except Exception as exc:
            raise self._map_exception(exc) from exc

    def _ensure_client(self) -> _AnthropicClient:
        if self._client is not None:
            return self._client
        self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _AnthropicClient:
        try:
            anthropic_module = importlib.import_module("anthropic")
        except ImportError as exc:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="anthropic SDK is not installed",
            ) from exc

        async_anthropic = getattr(anthropic_module, "AsyncAnthropic", None)
        if async_anthropic is None:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="anthropic SDK does not expose AsyncAnthropic",
            )

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds

        return cast("_AnthropicClient", async_anthropic(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None:
            return self._api_key

        env_name = self._api_key_env or "ANTHROPIC_API_KEY"
        configured = os.getenv(env_name)
        if configured is None or not configured.strip():
            raise ProviderAuthenticationError(
                provider=self.provider_name,
                detail=f"missing Anthropic API key; set {env_name}",
                http_status=401,
            )
        return configured.strip()

    def _build_payload(self, request: InvocationRequest) -> dict[str, object]:
        payload: dict[str, object] = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": (
                request.max_output_tokens
                if request.max_output_tokens is not None
                else _DEFAULT_MAX_TOKENS
            ),
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if request.temperature is not None:
            payload["temperature"] = request.temperature

        if request.tools_enabled:
            payload["tools"] = [_tool_definition_payload(tool) for tool in request.tools]
            tool_choice = _tool_choice_payload(request.tool_choice)
            if tool_choice is not None:
                payload["tool_choice"] = tool_choice
        return payload

    def _map_exception(self, exc: Exception) -> ProviderError:
        return map_sdk_exception(exc, provider=self.provider_name)


def _tool_definition_payload(tool: ToolDefinition) -> dict[str, object]:
    return {
        "name": tool.name,
        "description": tool.description,
        "input_schema": dict(tool.json_schema),
    }


def _tool_choice_payload(tool_choice: str | None) -> dict[str, object] | None:
    if tool_choice is None or tool_choice == "auto":
        return None
    if tool_choice == "required":
        return {"type": "any"}
    if tool_choice == "none":
        return {"type": "none"}
    return {"type": "tool", "name": tool_choice}


__all__ = ["AnthropicProvider"]
