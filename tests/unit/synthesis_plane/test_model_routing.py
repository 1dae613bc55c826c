"""Unit tests for per-stage model selection."""

from __future__ import annotations

import pytest

from forge_orchestrator.config import default_config
from forge_orchestrator.synthesis_plane.model_routing import (
    DEFAULT_ANTHROPIC_MODEL,
    ModelRoutes,
)


def test_blank_roles_fall_back_to_default_provider_model() -> None:
    routes = ModelRoutes.from_config(default_config())

    assert routes.planner == DEFAULT_ANTHROPIC_MODEL
    assert routes.builder == DEFAULT_ANTHROPIC_MODEL
    assert routes.text_response == DEFAULT_ANTHROPIC_MODEL


def test_openai_default_and_role_overrides() -> None:
    config = default_config()
    config["providers"]["default"] = "openai"
    config["providers"]["openai"]["model"] = "gpt-4o-mini"
    config["models"]["builder"] = "claude-sonnet-4.6"

    routes = ModelRoutes.from_config(config)

    assert routes.planner == "gpt-4o-mini"
    assert routes.builder == "claude-sonnet-4-6"
    assert routes.for_role("builder") == "claude-sonnet-4-6"
    with pytest.raises(KeyError):
        routes.for_role("reviewer")


def test_empty_role_is_rejected() -> None:
    with pytest.raises(ValueError):
        ModelRoutes(planner="", builder="x", verifier="x", text_response="x")
