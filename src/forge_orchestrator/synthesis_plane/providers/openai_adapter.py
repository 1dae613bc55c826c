"""
forge-orchestrator — OpenAI provider adapter

File: src/forge_orchestrator/synthesis_plane/providers/openai_adapter.py
Last updated: 2026-10-19

Purpose
- Send one ``InvocationRequest`` through the OpenAI Responses API.

Functional requirements
- The SDK is imported lazily; a missing SDK raises ``ProviderUnavailableError``.
- Returns the raw ``Response``; ``normalize_response`` reads its ``output`` items.
- SDK exceptions are mapped onto the normalized taxonomy.
"""

from __future__ import annotations

import importlib
import os
from typing import Protocol, cast

from forge_orchestrator.domain.models import InvocationRequest, ToolDefinition
from forge_orchestrator.synthesis_plane.providers.base import (
    BaseProvider,
    ProviderAuthenticationError,
    ProviderError,
    ProviderUnavailableError,
    map_sdk_exception,
)


class _OpenAIResponsesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _OpenAIClient(Protocol):
    responses: _OpenAIResponsesAPI


class OpenAIProvider(BaseProvider):
    """OpenAI Responses API adapter with optional SDK dependency and injected client support."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_key_env: str | None = "OPENAI_API_KEY",
        base_url: str | None = None,
        organization: str | None = None,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
    ) -> None:
        self._api_key = api_key.strip() if api_key and api_key.strip() else None
        self._api_key_env = api_key_env
        self._base_url = base_url or None
        self._organization = organization or None

        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._client = client

    async def send(self, request: InvocationRequest) -> object:
        payload = self._build_payload(request)
        client = self._ensure_client()
        try:
            return await client.responses.create(**payload)
        except ProviderError:
            raise
        except Exception as exc:
            raise self._map_exception(exc) from exc

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is not None:
            return self._client
        self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK is not installed",
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK does not expose AsyncOpenAI",
            )

        init_kwargs: dict[str, object] = {"api_key": self._resolve_api_key()}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._organization is not None:
            init_kwargs["organization"] = self._organization
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds

        client = async_openai(**init_kwargs)
        if not hasattr(client, "responses"):
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai client missing responses API",
            )
        return cast("_OpenAIClient", client)

    def _resolve_api_key(self) -> str:
        if self._api_key is not None:
            return self._api_key

        env_name = self._api_key_env or "OPENAI_API_KEY"
        configured = os.getenv(env_name)
        if configured is None or not configured.strip():
            raise ProviderAuthenticationError(
                provider=self.provider_name,
                detail=f"missing OpenAI API key; set {env_name}",
                http_status=401,
            )
        return configured.strip()

    def _build_payload(self, request: InvocationRequest) -> dict[str, object]:
        payload: dict[str, object] = {
            "model": request.model,
            "input": request.prompt,
        }
        if request.system_prompt:
            payload["instructions"] = request.system_prompt
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_output_tokens is not None:
            payload["max_output_tokens"] = request.max_output_tokens

        if request.tools_enabled:
            payload["tools"] = [_tool_definition_payload(tool) for tool in request.tools]
            if request.tool_choice is not None:
                payload["tool_choice"] = _tool_choice_payload(request.tool_choice)
        return payload

    def _map_exception(self, exc: Exception) -> ProviderError:
        return map_sdk_exception(exc, provider=self.provider_name)


def _tool_definition_payload(tool: ToolDefinition) -> dict[str, object]:
    return {
        "type": "function",
        "name": tool.name,
        "description": tool.description,
        "parameters": dict(tool.json_schema),
        "strict": False,
    }


def _tool_choice_payload(tool_choice: str) -> object:
    if tool_choice in {"auto", "required", "none"}:
        return tool_choice
    return {"type": "function", "name": tool_choice}


__all__ = ["OpenAIProvider"]
