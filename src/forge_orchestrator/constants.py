"""Stable constants shared across orchestrator planes."""

from __future__ import annotations

from typing import Final

# Model roles resolved from the ``[models]`` config section.
MODEL_ROLE_PLANNER: Final[str] = "planner"
MODEL_ROLE_BUILDER: Final[str] = "builder"
MODEL_ROLE_VERIFIER: Final[str] = "verifier"
MODEL_ROLE_TEXT_RESPONSE: Final[str] = "text_response"
MODEL_ROLES: Final[tuple[str, ...]] = (
    MODEL_ROLE_PLANNER,
    MODEL_ROLE_BUILDER,
    MODEL_ROLE_VERIFIER,
    MODEL_ROLE_TEXT_RESPONSE,
)

# Per-stage generation parameters.
PLANNER_TEMPERATURE: Final[float] = 0.2
PLANNER_MAX_OUTPUT_TOKENS: Final[int] = 1024
BUILDER_TEMPERATURE: Final[float] = 0.4
BUILDER_MAX_OUTPUT_TOKENS: Final[int] = 64_000
TEXT_RESPONSE_TEMPERATURE: Final[float] = 0.7
TEXT_RESPONSE_MAX_OUTPUT_TOKENS: Final[int] = 1200
VERIFIER_TEMPERATURE: Final[float] = 0.1
VERIFIER_MAX_OUTPUT_TOKENS: Final[int] = 8000

# Builder tool names.
TOOL_CREATE_PROJECT: Final[str] = "create_project"
TOOL_CREATE_FILE: Final[str] = "create_file"
TOOL_FINALIZE_PROJECT: Final[str] = "finalize_project"

# Reference prefixes the validator treats as external.
EXTERNAL_REFERENCE_PREFIXES: Final[tuple[str, ...]] = (
    "https://",
    "http://",
    "//cdn.",
    "//unpkg.",
    "//fonts.",
)
DATA_URI_PREFIX: Final[str] = "data:"

ENTRY_FILE: Final[str] = "index.html"
README_FILE: Final[str] = "README.md"
README_MIN_LENGTH: Final[int] = 50
EFFECTIVELY_EMPTY_MAX_LENGTH: Final[int] = 10

# Terminal texts returned when a code pipeline cannot deliver an archive.
EMPTY_BUILD_TEXT: Final[str] = "I was unable to generate the project files. Please try again."
PACKAGING_FAILED_TEXT: Final[str] = (
    "The project was built but could not be packaged. Please try again."
)
INVOCATION_FAILED_TEMPLATE: Final[str] = (
    "The request could not be completed because the model provider failed: {code}. "
    "Please try again."
)

# Appended to the prompt when the invocation layer retries without tools.
NO_TOOLS_FALLBACK_NOTE: Final[str] = (
    "\n\n[Note: Please provide a text response only, as tool execution is temporarily "
    "unavailable.]"
)

DEFAULT_PROJECT_NAME: Final[str] = "project"
SLUG_MAX_LENGTH: Final[int] = 40

# USD per one million tokens.
MODEL_COSTS: Final[dict[str, dict[str, float]]] = {
    "anthropic/claude-sonnet-4": {"input": 3.0, "output": 15.0},
    "anthropic/claude-opus-4": {"input": 15.0, "output": 75.0},
    "anthropic/claude-3.5-sonnet": {"input": 3.0, "output": 15.0},
    "anthropic/claude-3.5-haiku": {"input": 0.8, "output": 4.0},
    "anthropic/claude-3-opus": {"input": 15.0, "output": 75.0},
    "claude-sonnet-4-20250514": {"input": 3.0, "output": 15.0},
    "claude-opus-4-20250514": {"input": 15.0, "output": 75.0},
    "claude-3-5-haiku-20241022": {"input": 0.8, "output": 4.0},
    "openai/gpt-4-turbo": {"input": 10.0, "output": 30.0},
    "openai/gpt-4o": {"input": 5.0, "output": 15.0},
    "openai/gpt-4o-mini": {"input": 0.15, "output": 0.6},
    "gpt-4o": {"input": 5.0, "output": 15.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
    "meta-llama/llama-3.1-405b-instruct": {"input": 3.0, "output": 3.0},
    "meta-llama/llama-3.1-70b-instruct": {"input": 0.5, "output": 0.5},
    "google/gemini-pro-1.5": {"input": 2.5, "output": 7.5},
    "default": {"input": 1.0, "output": 3.0},
}

__all__ = [
    "BUILDER_MAX_OUTPUT_TOKENS",
    "BUILDER_TEMPERATURE",
    "DATA_URI_PREFIX",
    "DEFAULT_PROJECT_NAME",
    "EFFECTIVELY_EMPTY_MAX_LENGTH",
    "EMPTY_BUILD_TEXT",
    "ENTRY_FILE",
    "EXTERNAL_REFERENCE_PREFIXES",
    "INVOCATION_FAILED_TEMPLATE",
    "MODEL_COSTS",
    "MODEL_ROLES",
    "MODEL_ROLE_BUILDER",
    "MODEL_ROLE_PLANNER",
    "MODEL_ROLE_TEXT_RESPONSE",
    "MODEL_ROLE_VERIFIER",
    "NO_TOOLS_FALLBACK_NOTE",
    "PACKAGING_FAILED_TEXT",
    "PLANNER_MAX_OUTPUT_TOKENS",
    "PLANNER_TEMPERATURE",
    "README_FILE",
    "README_MIN_LENGTH",
    "SLUG_MAX_LENGTH",
    "TEXT_RESPONSE_MAX_OUTPUT_TOKENS",
    "TEXT_RESPONSE_TEMPERATURE",
    "TOOL_CREATE_FILE",
    "TOOL_CREATE_PROJECT",
    "TOOL_FINALIZE_PROJECT",
    "VERIFIER_MAX_OUTPUT_TOKENS",
    "VERIFIER_TEMPERATURE",
]
