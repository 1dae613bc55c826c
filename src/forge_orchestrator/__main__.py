"""Module entrypoint for ``python -m forge_orchestrator``."""

from __future__ import annotations

from forge_orchestrator.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
