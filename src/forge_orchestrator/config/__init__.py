"""
forge-orchestrator config package public API.

File: src/forge_orchestrator/config/__init__.py
Last updated: 2026-10-19

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``forge.toml`` + ``FORGE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from forge_orchestrator.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from forge_orchestrator.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ForgeConfig,
    assert_valid_config,
    default_config,
    redact_config,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ForgeConfig",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "redact_config",
    "validate_config",
]
