"""
forge-orchestrator — programmatic artifact validator

File: src/forge_orchestrator/verification_plane/validator.py
Last updated: 2026-10-19

Purpose
- Cheap structural and reference checks over an artifact set, run before any repair call.

What should be included in this file
- The browser-project rule set: entry file, overview document, empty files, HTML skeleton,
  local references, Alpine scope, boilerplate-only assets and CSS ``url()`` references.
- The smaller script-project rule set.

Functional requirements
- Pure and deterministic: no IO, no clock, same input gives the same issue list.
- Issue strings are stable; callers and tests match on substrings.

Non-functional requirements
- Linear in total artifact size; regexes must not backtrack catastrophically.
"""

from __future__ import annotations

import json
import posixpath
import re
from collections.abc import Iterable

from forge_orchestrator.constants import (
    DATA_URI_PREFIX,
    EFFECTIVELY_EMPTY_MAX_LENGTH,
    ENTRY_FILE,
    EXTERNAL_REFERENCE_PREFIXES,
    README_MIN_LENGTH,
)
from forge_orchestrator.domain.models import ArtifactSet, ProjectMode, ValidationReport

_DOCTYPE_RE = re.compile(r"<!doctype html", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<html\b", re.IGNORECASE)
_HEAD_TAG_RE = re.compile(r"<head\b", re.IGNORECASE)
_BODY_TAG_RE = re.compile(r"<body\b", re.IGNORECASE)

_LINK_HREF_RE = re.compile(r"""\blink\b[^>]+\bhref=["']([^"']+)["']""", re.IGNORECASE)
_SCRIPT_SRC_RE = re.compile(r"""\bscript\b[^>]+\bsrc=["']([^"']+)["']""", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r"""\bimg\b[^>]+\bsrc=["']([^"']+)["']""", re.IGNORECASE)
_CSS_URL_RE = re.compile(r"""url\(\s*["']?([^"')]+?)["']?\s*\)""", re.IGNORECASE)

_ALPINE_DIRECTIVE_RE = re.compile(
    r"\sx-(?:show|if|for|model|text|html|bind|on|transition|cloak|init|ref|effect)\b"
)
_ALPINE_EVENT_SHORTHAND_RE = re.compile(r"<[^<>]*\s@[\w.:-]+\s*=")
_ALPINE_BIND_SHORTHAND_RE = re.compile(r"<[^<>]*\s:[\w.-]+\s*=")
_ALPINE_SCOPE_RE = re.compile(r"\bx-data\b")

_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_CSS_AT_RULE_RE = re.compile(r"@(?:import|charset)\b[^;]*;", re.IGNORECASE)
# Starts only at a rule boundary; a selector never contains `;`, `{` or `}`.
_CSS_EMPTY_RULE_RE = re.compile(r"(?:^|(?<=[{};]))[^{};]*\{\s*\}")
_JS_LINE_COMMENT_RE = re.compile(r"(?<![:\\])//[^\n]*")
_JS_USE_STRICT_RE = re.compile(r"""["']use strict["']\s*;?""")
_JS_IMPORT_LINE_RE = re.compile(r"^\s*import\b[^;\n]*;?[ \t]*$", re.MULTILINE)
_EMPTY_FUNCTION = r"(?:function\s*\w*\s*\(\s*\)|\(\s*\)\s*=>)\s*\{\s*\}"
_JS_EMPTY_READY_RE = re.compile(
    r"(?:document|window)\.addEventListener\(\s*[\"']DOMContentLoaded[\"']\s*,\s*"
    + _EMPTY_FUNCTION
    + r"\s*\)\s*;?"
)
_JS_EMPTY_IIFE_RE = re.compile(
    r"\(\s*" + _EMPTY_FUNCTION + r"\s*\)\s*\(\s*\)\s*;?"
    r"|\(\s*function\s*\(\s*\)\s*\{\s*\}\s*\(\s*\)\s*\)\s*;?"
)

_SCRIPT_ENTRY_CANDIDATES: dict[ProjectMode, tuple[str, ...]] = {
    ProjectMode.PYTHON: ("main.py", "app.py"),
    ProjectMode.NODE: ("package.json", "index.js"),
}


def validate_artifacts(
    artifacts: ArtifactSet,
    *,
    mode: ProjectMode = ProjectMode.WEBSITE,
) -> ValidationReport:
    """Run the rule set for ``mode`` and return every issue found, in rule order."""

    mode = ProjectMode.parse(mode)
    if mode.is_script:
        return ValidationReport(issues=tuple(_script_issues(artifacts, mode)))
    return ValidationReport(issues=tuple(_web_issues(artifacts)))


def is_external_reference(value: str) -> bool:
    return value.startswith(EXTERNAL_REFERENCE_PREFIXES) or value.startswith(DATA_URI_PREFIX)


def is_effectively_empty(path: str, content: str) -> bool:
    """True when a CSS/JS file holds nothing but comments and boilerplate."""

    stripped = _BLOCK_COMMENT_RE.sub("", content)
    lowered = path.lower()
    if lowered.endswith(".css"):
        stripped = _CSS_AT_RULE_RE.sub("", stripped)
        stripped = _strip_until_stable(stripped, (_CSS_EMPTY_RULE_RE,))
    elif lowered.endswith(".js"):
        stripped = _JS_LINE_COMMENT_RE.sub("", stripped)
        stripped = _JS_USE_STRICT_RE.sub("", stripped)
        stripped = _JS_IMPORT_LINE_RE.sub("", stripped)
        stripped = _strip_until_stable(stripped, (_JS_EMPTY_READY_RE, _JS_EMPTY_IIFE_RE))
    return len(stripped.strip()) <= EFFECTIVELY_EMPTY_MAX_LENGTH


def _strip_until_stable(text: str, patterns: Iterable[re.Pattern[str]]) -> str:
    compiled = tuple(patterns)
    while True:
        previous = text
        for pattern in compiled:
            text = pattern.sub("", text)
        if text == previous:
            return text


def _common_issues(artifacts: ArtifactSet) -> list[str]:
    issues: list[str] = []
    readme_path = artifacts.find_case_insensitive("readme.md")
    if readme_path is None:
        issues.append("README.md is missing")
    elif len(artifacts[readme_path].strip()) < README_MIN_LENGTH:
        issues.append("README.md exists but has very little content")

    for path, content in artifacts.items():
        if not content.strip():
            issues.append(f"File is empty: {path}")
    return issues


def _web_issues(artifacts: ArtifactSet) -> list[str]:
    issues: list[str] = []
    if ENTRY_FILE not in artifacts.paths:
        issues.append(f"{ENTRY_FILE} is missing — project has no entry point")
    issues.extend(_common_issues(artifacts))

    known_paths = frozenset(artifacts.paths)
    checked_assets: set[str] = set()

    for path, content in artifacts.items():
        if not path.lower().endswith(".html"):
            continue
        issues.extend(_html_structure_issues(path, content))
        issues.extend(_html_reference_issues(path, content, artifacts, known_paths, checked_assets))
        if _uses_alpine_without_scope(content):
            issues.append(
                f"{path}: Alpine.js directives used without an x-data scope declaration "
                "(add x-data to a parent element)"
            )

    for path, content in artifacts.items():
        if not path.lower().endswith(".css"):
            continue
        for value in _CSS_URL_RE.findall(content):
            reference = value.strip()
            if not reference or reference.startswith("#") or is_external_reference(reference):
                continue
            if _resolve_reference(path, reference, known_paths) is None:
                issues.append(f"{path}: url() references missing file: {reference}")
    return issues


def _html_structure_issues(path: str, html: str) -> list[str]:
    issues: list[str] = []
    if _DOCTYPE_RE.search(html) is None:
        issues.append(f"{path}: missing <!DOCTYPE html>")
    if _HTML_TAG_RE.search(html) is None:
        issues.append(f"{path}: missing <html> tag")
    if _HEAD_TAG_RE.search(html) is None:
        issues.append(f"{path}: missing <head> tag")
    if _BODY_TAG_RE.search(html) is None:
        issues.append(f"{path}: missing <body> tag")
    if 'name="viewport"' not in html and "name='viewport'" not in html:
        issues.append(f"{path}: missing viewport meta tag (breaks mobile layout)")
    return issues


def _html_reference_issues(
    path: str,
    html: str,
    artifacts: ArtifactSet,
    known_paths: frozenset[str],
    checked_assets: set[str],
) -> list[str]:
    issues: list[str] = []
    references: list[tuple[str, str, str]] = []
    for value in _LINK_HREF_RE.findall(html):
        if value.startswith("#") or value.lower().startswith("mailto:"):
            continue
        references.append(("<link>", value, ""))
    for value in _SCRIPT_SRC_RE.findall(html):
        references.append(("<script>", value, ""))
    for value in _IMG_SRC_RE.findall(html):
        references.append(
            ("<img>", value, " (use a CSS gradient or SVG placeholder instead)")
        )

    for tag, value, hint in references:
        if is_external_reference(value):
            continue
        resolved = _resolve_reference(path, value, known_paths)
        if resolved is None:
            issues.append(f"{path}: {tag} references missing file: {value}{hint}")
            continue
        if resolved in checked_assets or not resolved.lower().endswith((".css", ".js")):
            continue
        checked_assets.add(resolved)
        content = artifacts[resolved]
        # Blank files are already reported as empty.
        if content.strip() and is_effectively_empty(resolved, content):
            issues.append(f"{resolved}: file is effectively empty (only comments/boilerplate)")
    return issues


def _uses_alpine_without_scope(html: str) -> bool:
    if _ALPINE_SCOPE_RE.search(html) is not None:
        return False
    return any(
        pattern.search(html) is not None
        for pattern in (
            _ALPINE_DIRECTIVE_RE,
            _ALPINE_EVENT_SHORTHAND_RE,
            _ALPINE_BIND_SHORTHAND_RE,
        )
    )


def _normalize_reference(value: str) -> str:
    normalized = value.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _resolve_reference(source_path: str, value: str, known_paths: frozenset[str]) -> str | None:
    """Match a local reference root-relative first, then relative to the referencing file."""

    normalized = _normalize_reference(value)
    if not normalized:
        return None
    if normalized in known_paths:
        return normalized
    base_dir = posixpath.dirname(source_path)
    if base_dir:
        relative = posixpath.normpath(posixpath.join(base_dir, normalized))
        if relative in known_paths:
            return relative
    return None


def _script_issues(artifacts: ArtifactSet, mode: ProjectMode) -> list[str]:
    issues: list[str] = []
    candidates = _SCRIPT_ENTRY_CANDIDATES[mode]
    if not any(candidate in artifacts.paths for candidate in candidates):
        issues.append(f"{candidates[0]} is missing — project has no entry point")
    issues.extend(_common_issues(artifacts))

    if mode is ProjectMode.NODE and "package.json" in artifacts.paths:
        manifest = artifacts["package.json"]
        if manifest.strip():
            try:
                json.loads(manifest)
            except json.JSONDecodeError:
                issues.append("package.json is not valid JSON")
    return issues


__all__ = ["is_effectively_empty", "is_external_reference", "validate_artifacts"]
