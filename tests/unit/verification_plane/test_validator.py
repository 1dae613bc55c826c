"""
Unit tests for the programmatic artifact validator.

Coverage:
- Entry file, overview document and empty-file rules.
- HTML skeleton, local references (exact-case, root then file-relative) and Alpine scope checks.
- Effectively-empty CSS/JS detection and CSS ``url()`` references.
- Empty-rule stripping stays linear on large brace-free stylesheets.
- Script-mode rule set.
- Determinism and external-reference immunity (property-based).
"""

from __future__ import annotations

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from forge_orchestrator.domain.models import ArtifactSet, ProjectMode
from forge_orchestrator.verification_plane.validator import (
    is_effectively_empty,
    is_external_reference,
    validate_artifacts,
)

# ``valid_site`` is never mutated inside hypothesis examples.
_fixture_safe = settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)


def _issues(files: dict[str, str], mode: ProjectMode = ProjectMode.WEBSITE) -> tuple[str, ...]:
    return validate_artifacts(ArtifactSet(files), mode=mode).issues


def test_valid_site_passes(valid_site) -> None:
    report = validate_artifacts(ArtifactSet(valid_site))
    assert report.passed, report.issues


def test_missing_entry_and_readme_are_reported(valid_site) -> None:
    del valid_site["index.html"]
    del valid_site["README.md"]

    issues = _issues(valid_site)

    assert issues[0] == "index.html is missing — project has no entry point"
    assert "README.md is missing" in issues


def test_short_readme_and_blank_files(valid_site) -> None:
    valid_site["README.md"] = "# Hi"
    valid_site["notes.txt"] = "   \n"

    issues = _issues(valid_site)

    assert "README.md exists but has very little content" in issues
    assert "File is empty: notes.txt" in issues


def test_lowercase_readme_satisfies_overview_rule(valid_site) -> None:
    valid_site["readme.md"] = valid_site.pop("README.md")
    assert not any("README" in issue for issue in _issues(valid_site))


def test_html_skeleton_rules(valid_site) -> None:
    valid_site["about.html"] = "<div>About</div>"

    issues = _issues(valid_site)

    assert "about.html: missing <!DOCTYPE html>" in issues
    assert "about.html: missing <html> tag" in issues
    assert "about.html: missing <head> tag" in issues
    assert "about.html: missing <body> tag" in issues
    assert "about.html: missing viewport meta tag (breaks mobile layout)" in issues


def test_header_tag_does_not_satisfy_head_rule(valid_site) -> None:
    index = valid_site["index.html"]
    valid_site["index.html"] = index.replace("<head>", "<header>").replace("</head>", "</header>")

    assert "index.html: missing <head> tag" in _issues(valid_site)


def test_missing_local_references_are_reported_with_tag(valid_site) -> None:
    valid_site["index.html"] = valid_site["index.html"].replace(
        "</body>",
        '<img src="images/hero.png"><script src="scripts/missing.js"></script></body>',
    )

    issues = _issues(valid_site)

    assert "index.html: <script> references missing file: scripts/missing.js" in issues
    assert (
        "index.html: <img> references missing file: images/hero.png "
        "(use a CSS gradient or SVG placeholder instead)"
    ) in issues


def test_external_anchor_and_relative_references_are_accepted(valid_site) -> None:
    index = valid_site["index.html"]
    valid_site["index.html"] = index.replace(
        "</head>",
        '<link rel="preconnect" href="https://fonts.googleapis.com">'
        '<link rel="icon" href="data:image/svg+xml,%3Csvg%3E%3C/svg%3E">'
        '<link rel="canonical" href="#top">'
        '<script src="//cdn.jsdelivr.net/npm/alpinejs"></script></head>',
    )
    valid_site["pages/about.html"] = index.replace(
        'href="styles/main.css"', 'href="../styles/main.css"'
    ).replace('src="scripts/app.js"', 'src="./../scripts/app.js"')

    report = validate_artifacts(ArtifactSet(valid_site))

    assert report.passed, report.issues


def test_reference_paths_match_exact_case(valid_site) -> None:
    valid_site["index.html"] = valid_site["index.html"].replace(
        'href="styles/main.css"', 'href="Styles/Main.css"'
    )

    issues = _issues(valid_site)

    assert issues == ("index.html: <link> references missing file: Styles/Main.css",)


def test_alpine_directives_require_scope(valid_site) -> None:
    unscoped = valid_site["index.html"].replace(
        '<button id="refresh">', '<button id="refresh" @click="open = !open" x-show="open">'
    )
    scoped = unscoped.replace('<main id="app">', '<main id="app" x-data="{ open: false }">')

    issues = _issues({**valid_site, "index.html": unscoped})

    assert any("Alpine.js directives used without an x-data scope" in i for i in issues)
    assert _issues({**valid_site, "index.html": scoped}) == ()


def test_bind_shorthand_alone_triggers_alpine_rule(valid_site) -> None:
    valid_site["index.html"] = valid_site["index.html"].replace("<h1>", '<h1 :class="theme">')
    assert any("x-data" in issue for issue in _issues(valid_site))


def test_effectively_empty_assets_are_reported_once(valid_site) -> None:
    valid_site["scripts/app.js"] = (
        "'use strict';\n// app entry\n"
        "document.addEventListener('DOMContentLoaded', () => {});\n"
    )
    valid_site["other.html"] = valid_site["index.html"]

    flagged = [issue for issue in _issues(valid_site) if "effectively empty" in issue]

    assert flagged == ["scripts/app.js: file is effectively empty (only comments/boilerplate)"]


def test_blank_referenced_asset_is_only_reported_as_empty(valid_site) -> None:
    valid_site["styles/main.css"] = ""

    issues = _issues(valid_site)

    assert "File is empty: styles/main.css" in issues
    assert not any("effectively empty" in issue for issue in issues)


def test_effectively_empty_detection() -> None:
    assert is_effectively_empty("a.css", "/* theme */\n@import url('x.css');\nbody {}\n.a { }")
    assert not is_effectively_empty("a.css", "body { color: #123456; margin: 0 auto; }")
    assert is_effectively_empty("a.js", "(function () {})();\n// nothing")
    assert is_effectively_empty("a.js", "import { x } from './x.js';\n")
    assert not is_effectively_empty("a.js", "fetch('https://api.example.com').then(render);")


def test_nested_and_trailing_empty_css_rules_are_stripped() -> None:
    assert is_effectively_empty("a.css", "@media (max-width: 600px) { .a { } }\n.b {}")
    assert is_effectively_empty("a.css", "body { color: red; }\n.a {}") is False


def test_large_brace_free_css_is_handled_in_linear_time() -> None:
    brace_free = ".card-title-with-a-long-selector " * 20_000
    separated = "color: red; " * 20_000

    assert is_effectively_empty("a.css", brace_free) is False
    assert is_effectively_empty("a.css", separated + ".a {}") is False
    assert is_effectively_empty("a.css", brace_free + "{ }") is True


def test_css_url_references(valid_site) -> None:
    valid_site["styles/main.css"] = (
        "body { background: url('images/bg.png'); }\n"
        ".logo { background: url(data:image/png;base64,AAAA); }\n"
        ".hero { background: url(https://example.com/hero.jpg); }\n"
        ".icon { mask: url(#clip); }\n"
    )

    issues = _issues(valid_site)

    assert issues == ("styles/main.css: url() references missing file: images/bg.png",)


def test_python_mode_rules(valid_site) -> None:
    readme = valid_site["README.md"]

    assert _issues({"main.py": "print('hi')", "README.md": readme}, ProjectMode.PYTHON) == ()
    assert _issues({"app.py": "print('hi')", "README.md": readme}, ProjectMode.PYTHON) == ()
    issues = _issues({"tool.py": "print('hi')", "README.md": readme}, ProjectMode.PYTHON)
    assert issues == ("main.py is missing — project has no entry point",)


def test_node_mode_rules(valid_site) -> None:
    readme = valid_site["README.md"]

    bad_manifest = _issues({"package.json": "{not json", "README.md": readme}, ProjectMode.NODE)
    assert bad_manifest == ("package.json is not valid JSON",)
    assert _issues({"index.js": "console.log(1)", "README.md": readme}, ProjectMode.NODE) == ()


def test_script_modes_skip_html_rules(valid_site) -> None:
    files = {"main.py": "print(1)", "README.md": valid_site["README.md"], "x.html": "<p>"}
    assert _issues(files, ProjectMode.PYTHON) == ()


def test_is_external_reference() -> None:
    assert is_external_reference("https://unpkg.com/x.js")
    assert is_external_reference("//fonts.googleapis.com/css")
    assert is_external_reference("data:image/png;base64,AA")
    assert not is_external_reference("scripts/app.js")
    assert not is_external_reference("//example.com/app.js")


_names = st.from_regex(r"[a-z]{1,8}", fullmatch=True)


@_fixture_safe
@given(extra=st.dictionaries(_names, st.text(max_size=200), max_size=6))
def test_validation_is_deterministic(valid_site, extra: dict[str, str]) -> None:
    files = {**valid_site, **{f"extra/{name}.txt": body for name, body in extra.items()}}

    first = validate_artifacts(ArtifactSet(files))
    second = validate_artifacts(ArtifactSet(files))

    assert first == second


@_fixture_safe
@given(
    prefix=st.sampled_from(["https://", "http://", "//cdn.", "//unpkg.", "//fonts."]),
    rest=st.from_regex(r"[a-z0-9./-]{1,30}", fullmatch=True),
)
def test_external_references_never_produce_missing_file_issues(
    valid_site, prefix: str, rest: str
) -> None:
    html = valid_site["index.html"].replace(
        "</body>", f'<script src="{prefix}{rest}"></script><img src="{prefix}{rest}"></body>'
    )

    issues = _issues({**valid_site, "index.html": html})

    assert not any("references missing file" in issue for issue in issues)
