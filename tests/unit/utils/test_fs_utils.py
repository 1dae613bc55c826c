"""Filesystem helper tests: guarded resolution, atomic writes and tree loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from forge_orchestrator.utils.fs import atomic_write, load_text_tree, resolve_within


def test_resolve_within_accepts_nested_paths(tmp_path: Path) -> None:
    assert resolve_within(tmp_path, "a/b.txt") == (tmp_path / "a" / "b.txt").resolve()
    assert resolve_within(tmp_path, "a/../c.txt") == (tmp_path / "c.txt").resolve()


@pytest.mark.parametrize("relative", ["../x.txt", "a/../../x.txt", ".", "a/.."])
def test_resolve_within_rejects_escapes_and_root(tmp_path: Path, relative: str) -> None:
    with pytest.raises(ValueError):
        resolve_within(tmp_path, relative)


def test_atomic_write_replaces_content_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "file.txt"

    atomic_write(target, "first")
    atomic_write(target, b"second")

    assert target.read_bytes() == b"second"
    assert [path.name for path in tmp_path.iterdir()] == ["file.txt"]


def test_atomic_write_requires_existing_parent(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write(tmp_path / "missing" / "file.txt", "x")


def test_load_text_tree_skips_binary_and_vendor_directories(tmp_path: Path) -> None:
    (tmp_path / "styles").mkdir()
    (tmp_path / "styles" / "main.css").write_text("body{}", encoding="utf-8")
    (tmp_path / "index.html").write_text("<html></html>", encoding="utf-8")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe")
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / "node_modules" / "lib" / "x.js").write_text("x", encoding="utf-8")

    tree = load_text_tree(tmp_path)

    assert tree == {"index.html": "<html></html>", "styles/main.css": "body{}"}


def test_load_text_tree_requires_directory(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        load_text_tree(tmp_path / "nope")
