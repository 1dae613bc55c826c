"""
forge-orchestrator — control plane

File: src/forge_orchestrator/control_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Pipeline orchestration, admission control and the multi-task job runner.
"""

from forge_orchestrator.control_plane.capacity_gate import CapacityExceededError, CapacityGate
from forge_orchestrator.control_plane.job_runner import JobOutcome, JobRunner
from forge_orchestrator.control_plane.orchestrator import PipelineOrchestrator

__all__ = [
    "CapacityExceededError",
    "CapacityGate",
    "JobOutcome",
    "JobRunner",
    "PipelineOrchestrator",
]
