"""
forge-orchestrator — planning plane

File: src/forge_orchestrator/planning/__init__.py
Last updated: 2026-10-19

Purpose
- Plan stage: classifies a task and produces a structured execution plan, with a
  deterministic fallback when the model output cannot be parsed.
"""

from forge_orchestrator.planning.planner import PlanStage, PlanStageResult, fallback_plan

__all__ = ["PlanStage", "PlanStageResult", "fallback_plan"]
