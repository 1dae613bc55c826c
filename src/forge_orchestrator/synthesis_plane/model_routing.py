"""Per-stage model selection resolved from the ``[providers]`` and ``[models]`` config sections."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from forge_orchestrator.constants import (
    MODEL_ROLE_BUILDER,
    MODEL_ROLE_PLANNER,
    MODEL_ROLE_TEXT_RESPONSE,
    MODEL_ROLE_VERIFIER,
)
from forge_orchestrator.synthesis_plane.providers.base import normalize_model_id

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True, slots=True)
class ModelRoutes:
    planner: str
    builder: str
    verifier: str
    text_response: str

    def __post_init__(self) -> None:
        for role in (
            MODEL_ROLE_PLANNER,
            MODEL_ROLE_BUILDER,
            MODEL_ROLE_VERIFIER,
            MODEL_ROLE_TEXT_RESPONSE,
        ):
            value = getattr(self, role)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"model for role {role!r} cannot be empty")
            object.__setattr__(self, role, normalize_model_id(value))

    @classmethod
    def uniform(cls, model: str) -> ModelRoutes:
        return cls(planner=model, builder=model, verifier=model, text_response=model)

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> ModelRoutes:
        """Resolve each role; a blank role falls back to the default provider's model."""

        providers = _section(config, "providers")
        models = _section(config, "models")
        default_provider = str(providers.get("default") or "anthropic").strip().lower()
        if default_provider == "openai":
            fallback = _text(_section(providers, "openai").get("model")) or DEFAULT_OPENAI_MODEL
        else:
            fallback = (
                _text(_section(providers, "anthropic").get("model")) or DEFAULT_ANTHROPIC_MODEL
            )
        return cls(
            planner=_text(models.get(MODEL_ROLE_PLANNER)) or fallback,
            builder=_text(models.get(MODEL_ROLE_BUILDER)) or fallback,
            verifier=_text(models.get(MODEL_ROLE_VERIFIER)) or fallback,
            text_response=_text(models.get(MODEL_ROLE_TEXT_RESPONSE)) or fallback,
        )

    def for_role(self, role: str) -> str:
        if role not in {
            MODEL_ROLE_PLANNER,
            MODEL_ROLE_BUILDER,
            MODEL_ROLE_VERIFIER,
            MODEL_ROLE_TEXT_RESPONSE,
        }:
            raise KeyError(f"unknown model role: {role!r}")
        return str(getattr(self, role))


def _section(config: Mapping[str, object], key: str) -> Mapping[str, object]:
    value = config.get(key)
    return value if isinstance(value, Mapping) else {}


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


__all__ = ["DEFAULT_ANTHROPIC_MODEL", "DEFAULT_OPENAI_MODEL", "ModelRoutes"]
