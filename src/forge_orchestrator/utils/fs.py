"""
forge-orchestrator — filesystem utilities

File: src/forge_orchestrator/utils/fs.py
Last updated: 2026-10-19

Purpose
- Guarded path resolution, atomic writes and directory loading for packaging and the
  ``validate`` command.

Functional requirements
- Relative artifact paths must never resolve outside their output root.
- Atomic writes use temp files in the destination directory and replace in a single step.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

_SKIPPED_DIRECTORIES = frozenset({".git", "node_modules", "__pycache__", ".venv"})

__all__ = [
    "atomic_write",
    "load_text_tree",
    "resolve_within",
]


def resolve_within(root: PathLike, relative: str) -> Path:
    """Resolve ``relative`` under ``root``; raise ``ValueError`` when it escapes."""

    resolved_root = Path(root).resolve()
    candidate = (resolved_root / relative).resolve()
    try:
        candidate.relative_to(resolved_root)
    except ValueError as exc:
        raise ValueError(f"path escapes output root: {relative!r}") from exc
    if candidate == resolved_root:
        raise ValueError(f"path resolves to the output root itself: {relative!r}")
    return candidate


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Atomically write ``data`` to ``path`` via a sibling temp file and ``os.replace``."""

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)
    payload = data.encode(encoding) if isinstance(data, str) else data

    try:
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def load_text_tree(root: PathLike) -> dict[str, str]:
    """Read every UTF-8 text file under ``root`` keyed by POSIX relative path.

    Files that do not decode as UTF-8 are skipped, as are VCS and dependency folders.
    """

    base = Path(root)
    if not base.is_dir():
        raise NotADirectoryError(f"{base!s} is not a directory")

    files: dict[str, str] = {}
    for path in sorted(base.rglob("*")):
        if not path.is_file():
            continue
        relative = path.relative_to(base)
        if any(part in _SKIPPED_DIRECTORIES for part in relative.parts):
            continue
        try:
            files[relative.as_posix()] = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            continue
    return files
