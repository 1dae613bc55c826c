"""
forge-orchestrator — synthesis plane

File: src/forge_orchestrator/synthesis_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Model invocation runtime: provider routing, retries, prompt rendering and the build stage.

Functional requirements
- Must be provider-agnostic through adapters.
"""

from forge_orchestrator.synthesis_plane.build_context import BuildContext
from forge_orchestrator.synthesis_plane.builder import BuildResult, BuildStage, generate_readme
from forge_orchestrator.synthesis_plane.invocation import (
    InvocationExhaustedError,
    InvocationLayer,
    InvocationOutcome,
    InvocationPath,
    RetryPolicy,
    is_retryable_error,
)
from forge_orchestrator.synthesis_plane.model_routing import ModelRoutes
from forge_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine

__all__ = [
    "BuildContext",
    "BuildResult",
    "BuildStage",
    "InvocationExhaustedError",
    "InvocationLayer",
    "InvocationOutcome",
    "InvocationPath",
    "ModelRoutes",
    "PromptTemplateEngine",
    "RetryPolicy",
    "generate_readme",
    "is_retryable_error",
]
