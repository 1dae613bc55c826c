"""Observability: structured JSON-lines logging and correlation context."""

from forge_orchestrator.observability.logging import (
    correlation_scope,
    setup_logging,
    shutdown_logging,
)

__all__ = ["correlation_scope", "setup_logging", "shutdown_logging"]
