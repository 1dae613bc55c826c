"""
forge-orchestrator — verification plane

File: src/forge_orchestrator/verification_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Programmatic validation of generated artifacts and the single-pass repair loop that
  runs only when validation reports issues.
"""

from forge_orchestrator.verification_plane.repair import RepairLoop, RepairResult
from forge_orchestrator.verification_plane.validator import validate_artifacts

__all__ = ["RepairLoop", "RepairResult", "validate_artifacts"]
