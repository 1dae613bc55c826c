"""
forge-orchestrator — domain package

File: src/forge_orchestrator/domain/__init__.py
Last updated: 2026-10-19

Purpose
- Domain types shared across planes: Task, ExecutionPlan, ArtifactSet, ValidationReport,
  RepairPatch, invocation request/response records and pipeline results.

Functional requirements
- Keep the domain layer free of IO side effects.
"""

from forge_orchestrator.domain.models import (
    ArtifactSet,
    ExecutionPlan,
    InvocationRequest,
    NormalizedResponse,
    PipelineResult,
    ProjectMode,
    RepairPatch,
    Task,
    TokenUsage,
    ValidationReport,
)

__all__ = [
    "ArtifactSet",
    "ExecutionPlan",
    "InvocationRequest",
    "NormalizedResponse",
    "PipelineResult",
    "ProjectMode",
    "RepairPatch",
    "Task",
    "TokenUsage",
    "ValidationReport",
]
