"""
forge-orchestrator — artifact packaging

File: src/forge_orchestrator/integration_plane/packaging.py
Last updated: 2026-10-19

Purpose
- Write a verified artifact set to ``<output_root>/<name>/`` and archive it as
  ``<output_root>/<name>.zip``.

Functional requirements
- ``package`` never raises for IO or path errors; failures come back as
  ``PackageResult(success=False, error=...)``.
- Artifact paths must stay inside the project directory.
- Blocking filesystem work runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import zipfile
from pathlib import Path
from typing import Any, Protocol

import structlog

from forge_orchestrator.domain.models import ArtifactSet, PackageResult
from forge_orchestrator.utils.fs import PathLike, atomic_write, resolve_within


class Packager(Protocol):
    async def package(self, name: str, artifacts: ArtifactSet) -> PackageResult: ...


class ZipPackager:
    """Packager that writes a project directory plus a deflated zip beside it."""

    def __init__(self, output_root: PathLike, *, logger: Any | None = None) -> None:
        self._output_root = Path(output_root)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def output_root(self) -> Path:
        return self._output_root

    async def package(self, name: str, artifacts: ArtifactSet) -> PackageResult:
        try:
            result = await asyncio.to_thread(self._package_sync, name, artifacts)
        except (OSError, ValueError, zipfile.BadZipFile) as exc:
            self._logger.warning("packaging_failed", project=name, error=str(exc))
            return PackageResult(success=False, error=str(exc))

        self._logger.info(
            "packaging_complete",
            project=name,
            archive_path=result.archive_path,
            file_count=len(result.files),
            total_size=result.total_size,
        )
        return result

    def _package_sync(self, name: str, artifacts: ArtifactSet) -> PackageResult:
        if not artifacts:
            raise ValueError("nothing to package: artifact set is empty")

        self._output_root.mkdir(parents=True, exist_ok=True)
        project_dir = resolve_within(self._output_root, name)
        project_dir.mkdir(parents=True, exist_ok=True)

        for path, content in artifacts.items():
            target = resolve_within(project_dir, path)
            target.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(target, content)

        archive_path = resolve_within(self._output_root, f"{name}.zip")
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path, content in artifacts.items():
                archive.writestr(f"{name}/{path}", content)

        return PackageResult(
            success=True,
            archive_path=str(archive_path),
            files=artifacts.paths,
            total_size=archive_path.stat().st_size,
            project_dir=str(project_dir),
        )


__all__ = ["Packager", "ZipPackager"]
