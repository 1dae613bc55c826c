"""
forge-orchestrator — package root

File: src/forge_orchestrator/__init__.py
Last updated: 2026-10-19

Purpose
- Turns a natural-language task into a verified, packaged multi-file project by running
  plan, build and verify stages against generative model providers.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from __future__ import annotations

__version__ = "0.3.0"

__all__ = ["__version__"]
