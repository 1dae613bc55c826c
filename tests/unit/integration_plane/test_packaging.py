"""
Unit tests for the zip packager.

Coverage:
- Project directory plus archive layout with a ``<name>/`` prefix inside the zip.
- Escaping paths, empty sets and unwritable roots become failed results.
"""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from forge_orchestrator.domain.models import ArtifactSet
from forge_orchestrator.integration_plane.packaging import ZipPackager


@pytest.mark.asyncio
async def test_package_writes_directory_and_archive(tmp_path: Path, valid_site) -> None:
    packager = ZipPackager(tmp_path / "out")

    result = await packager.package("weather-dashboard", ArtifactSet(valid_site))

    assert result.success is True
    assert result.error is None
    assert result.files == tuple(valid_site)
    archive = tmp_path / "out" / "weather-dashboard.zip"
    assert result.archive_path == str(archive.resolve())
    assert result.total_size == archive.stat().st_size

    project_dir = Path(result.project_dir or "")
    assert (project_dir / "styles" / "main.css").read_text(encoding="utf-8") == (
        valid_site["styles/main.css"]
    )
    with zipfile.ZipFile(archive) as handle:
        assert sorted(handle.namelist()) == sorted(
            f"weather-dashboard/{path}" for path in valid_site
        )
        assert handle.read("weather-dashboard/index.html").decode() == valid_site["index.html"]
        assert handle.getinfo("weather-dashboard/README.md").compress_type == zipfile.ZIP_DEFLATED


@pytest.mark.asyncio
async def test_repackaging_overwrites_previous_output(tmp_path: Path) -> None:
    packager = ZipPackager(tmp_path)

    await packager.package("demo", ArtifactSet({"index.html": "old"}))
    result = await packager.package("demo", ArtifactSet({"index.html": "new"}))

    assert result.success is True
    assert (tmp_path / "demo" / "index.html").read_text(encoding="utf-8") == "new"


@pytest.mark.asyncio
async def test_escaping_artifact_path_fails_without_raising(tmp_path: Path) -> None:
    result = await ZipPackager(tmp_path).package(
        "demo", ArtifactSet({"../outside.js": "alert(1)"})
    )

    assert result.success is False
    assert "escapes" in (result.error or "")
    assert not (tmp_path / "outside.js").exists()


@pytest.mark.asyncio
async def test_empty_artifact_set_fails(tmp_path: Path) -> None:
    result = await ZipPackager(tmp_path).package("demo", ArtifactSet())

    assert result.success is False
    assert "empty" in (result.error or "")


@pytest.mark.asyncio
async def test_output_root_that_is_a_file_fails(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    result = await ZipPackager(blocker).package("demo", ArtifactSet({"a.txt": "x"}))

    assert result.success is False
    assert result.archive_path is None
