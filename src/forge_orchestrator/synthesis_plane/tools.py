"""
forge-orchestrator — builder tool contracts

File: src/forge_orchestrator/synthesis_plane/tools.py
Last updated: 2026-10-19

Purpose
- Declare the tools the build stage exposes to the model and decode their arguments.

Functional requirements
- Files arrive only through ``create_project`` and ``create_file``.
- ``finalize_project`` is accepted and recorded but carries no files.
- Malformed entries are skipped rather than failing the whole build.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from forge_orchestrator.constants import (
    TOOL_CREATE_FILE,
    TOOL_CREATE_PROJECT,
    TOOL_FINALIZE_PROJECT,
)
from forge_orchestrator.domain.models import JSONValue, NormalizedToolCall, ToolDefinition

_FILE_ENTRY_SCHEMA: dict[str, JSONValue] = {
    "type": "object",
    "properties": {
        "path": {
            "type": "string",
            "description": "Relative path inside the project, e.g. index.html or styles/main.css",
        },
        "content": {"type": "string", "description": "Complete file content"},
    },
    "required": ["path", "content"],
}

CREATE_PROJECT_TOOL = ToolDefinition(
    name=TOOL_CREATE_PROJECT,
    description=(
        "Create the whole project in one call. Pass every file from the plan with its "
        "complete content."
    ),
    json_schema={
        "type": "object",
        "properties": {
            "projectName": {"type": "string", "description": "Short project name"},
            "files": {"type": "array", "items": _FILE_ENTRY_SCHEMA},
        },
        "required": ["projectName", "files"],
    },
)

CREATE_FILE_TOOL = ToolDefinition(
    name=TOOL_CREATE_FILE,
    description="Add a single file to the project.",
    json_schema=_FILE_ENTRY_SCHEMA,
)

FINALIZE_PROJECT_TOOL = ToolDefinition(
    name=TOOL_FINALIZE_PROJECT,
    description="Signal that every file has been delivered.",
    json_schema={
        "type": "object",
        "properties": {"projectName": {"type": "string"}},
        "required": ["projectName"],
    },
)

BUILDER_TOOLS: tuple[ToolDefinition, ...] = (
    CREATE_PROJECT_TOOL,
    CREATE_FILE_TOOL,
    FINALIZE_PROJECT_TOOL,
)


@dataclass(frozen=True, slots=True)
class ExtractedFile:
    path: str
    content: str


def files_from_tool_call(call: NormalizedToolCall) -> tuple[ExtractedFile, ...]:
    """Decode the file entries carried by one tool call, in argument order."""

    if call.name == TOOL_CREATE_PROJECT:
        raw_files = call.args.get("files")
        if not isinstance(raw_files, Sequence) or isinstance(raw_files, (str, bytes)):
            return ()
        return tuple(
            extracted
            for extracted in (_decode_entry(entry) for entry in raw_files)
            if extracted is not None
        )
    if call.name == TOOL_CREATE_FILE:
        extracted = _decode_entry(call.args)
        return () if extracted is None else (extracted,)
    return ()


def project_name_from_tool_call(call: NormalizedToolCall) -> str | None:
    if call.name not in {TOOL_CREATE_PROJECT, TOOL_FINALIZE_PROJECT}:
        return None
    name = call.args.get("projectName")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def _decode_entry(entry: object) -> ExtractedFile | None:
    if not isinstance(entry, Mapping):
        return None
    path = entry.get("path")
    content = entry.get("content")
    if not isinstance(path, str) or not path.strip():
        return None
    if not isinstance(content, str):
        return None
    return ExtractedFile(path=path, content=content)


__all__ = [
    "BUILDER_TOOLS",
    "CREATE_FILE_TOOL",
    "CREATE_PROJECT_TOOL",
    "FINALIZE_PROJECT_TOOL",
    "ExtractedFile",
    "files_from_tool_call",
    "project_name_from_tool_call",
]
