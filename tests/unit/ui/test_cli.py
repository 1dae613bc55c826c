"""CLI router tests.

Coverage:
- Parser wiring and bundled sample prompts.
- ``validate`` exit codes and output on passing, failing and missing directories.
- ``config`` dumps the redacted effective config; config errors exit 2.
- ``run --json`` and ``batch --json`` end to end with a replayed provider.
- ``cli_entrypoint`` exit-code normalization.
"""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from forge_orchestrator.config.schema import default_config
from forge_orchestrator.main import ExitCode, cli_entrypoint
from forge_orchestrator.synthesis_plane.providers.base import ProviderRegistry
from forge_orchestrator.ui import cli
from forge_orchestrator.ui.cli import build_parser, build_pipeline, load_samples, run_cli


class _ReplayProvider:
    def __init__(self, *outcomes: object) -> None:
        self.outcomes = deque(outcomes)
        self.models: list[str] = []

    async def send(self, request: object) -> object:
        self.models.append(request.model)  # type: ignore[attr-defined]
        return self.outcomes.popleft()


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


@pytest.fixture
def empty_config(tmp_path: Path) -> Path:
    path = tmp_path / "forge.toml"
    path.write_text("", encoding="utf-8")
    return path


def _write_tree(root: Path, files: dict[str, str]) -> Path:
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


def test_parser_requires_a_prompt_source() -> None:
    parser = build_parser()

    args = parser.parse_args(["run", "--sample", "weather", "--json"])

    assert args.command == "run" and args.sample == "weather" and args.json
    with pytest.raises(SystemExit):
        parser.parse_args(["run"])
    with pytest.raises(SystemExit):
        parser.parse_args(["run", "--prompt", "a", "--sample", "b"])


def test_bundled_samples_load() -> None:
    samples = load_samples()

    assert samples["weather"] == "Build a weather dashboard"
    assert {"portfolio", "taskapp", "landing", "quiz"} <= set(samples)


def test_validate_passing_directory(
    tmp_path: Path, valid_site: dict[str, str], capsys: pytest.CaptureFixture[str]
) -> None:
    site = _write_tree(tmp_path / "site", valid_site)

    code = run_cli(["validate", str(site)])

    out = capsys.readouterr().out
    assert code == 0
    assert "Result: passed" in out
    assert f"Files: {len(valid_site)}" in out


def test_validate_reports_issues_as_json(
    tmp_path: Path, valid_site: dict[str, str], capsys: pytest.CaptureFixture[str]
) -> None:
    valid_site.pop("README.md")
    site = _write_tree(tmp_path / "site", valid_site)

    code = run_cli(["validate", str(site), "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 1
    assert payload["passed"] is False
    assert payload["issues"] == ["README.md is missing"]
    assert payload["mode"] == "website"


def test_validate_missing_directory_exits_two(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["validate", str(tmp_path / "absent")])

    assert code == 2
    assert capsys.readouterr().err.startswith("error: ")


def test_config_dump_is_redacted_json(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = tmp_path / "forge.toml"
    config_path.write_text("[retry]\nmax_attempts = 5\n", encoding="utf-8")

    code = run_cli(["config", "--config", str(config_path), "--log-level", "debug"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["retry"]["max_attempts"] == 5
    assert payload["observability"]["log_level"] == "DEBUG"
    assert payload["observability"]["redact_secrets"] is True


def test_config_errors_exit_two(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = run_cli(["config", "--config", str(tmp_path / "missing.toml")])

    assert code == 2
    assert "config file not found" in capsys.readouterr().err


def test_unknown_sample_exits_two(
    empty_config: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = run_cli(["run", "--sample", "nope", "--config", str(empty_config)])

    assert code == 2
    assert "unknown sample 'nope'" in capsys.readouterr().err


def test_build_pipeline_reads_capacity_and_models() -> None:
    config = default_config()
    config["capacity"]["max_concurrent_jobs"] = 5
    config["models"]["planner"] = "gpt-4o-mini"

    pipeline = build_pipeline(config, registry=ProviderRegistry())

    assert pipeline.capacity == 5
    assert pipeline.admission_poll_ms == 500
    assert pipeline.models.planner == "gpt-4o-mini"
    assert pipeline.models.builder == "claude-sonnet-4-20250514"


def test_run_json_packages_project(
    tmp_path: Path,
    empty_config: Path,
    valid_site: dict[str, str],
    payloads,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    provider = _ReplayProvider(payloads.plan(), payloads.files(valid_site))

    def _registry(_providers_config: object) -> ProviderRegistry:
        registry = ProviderRegistry()
        registry.register("anthropic", lambda: provider)
        return registry

    monkeypatch.setattr(cli, "build_provider_registry", _registry)
    output_dir = tmp_path / "builds"

    code = run_cli(
        [
            "run",
            "--prompt",
            "Build a weather dashboard",
            "--json",
            "--config",
            str(empty_config),
            "--output-dir",
            str(output_dir),
        ]
    )

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["command"] == "run"
    assert payload["outcome"] == "packaged"
    assert payload["files"] == list(valid_site)
    assert payload["total_usage"]["total_tokens"] == 550
    assert payload["estimated_cost_usd"] > 0
    assert (output_dir / "weather-dashboard.zip").is_file()
    assert [step["step"] for step in payload["timings"]] == [
        "planner",
        "builder",
        "verifier",
        "zip",
    ]
    assert provider.models == ["claude-sonnet-4-20250514"] * 2


def test_batch_json_reports_each_job(
    tmp_path: Path,
    empty_config: Path,
    payloads,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    provider = _ReplayProvider(
        payloads.plan("text", summary="Capital question", files=()),
        payloads.text("Paris."),
    )
    registry = ProviderRegistry()
    registry.register("anthropic", lambda: provider)
    monkeypatch.setattr(cli, "build_provider_registry", lambda _config: registry)
    prompts = tmp_path / "prompts.txt"
    prompts.write_text("\nWhat is the capital of France?\n\n", encoding="utf-8")

    code = run_cli(["batch", str(prompts), "--json", "--config", str(empty_config)])

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    (job,) = payload["jobs"]
    assert job["outcome"] == "text"
    assert job["text_response"] == "Paris."
    assert job["admission_waits"] == 0


def test_batch_without_prompts_exits_two(
    tmp_path: Path, empty_config: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    prompts = tmp_path / "prompts.txt"
    prompts.write_text("\n  \n", encoding="utf-8")

    code = run_cli(["batch", str(prompts), "--config", str(empty_config)])

    assert code == 2
    assert "no prompts found" in capsys.readouterr().err


def test_entrypoint_normalizes_exit_codes(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli_entrypoint(["validate", str(tmp_path / "absent")]) == ExitCode.CONFIG_ERROR
    assert cli_entrypoint(["bogus"]) == ExitCode.CONFIG_ERROR
    assert cli_entrypoint(["--help"]) == ExitCode.SUCCESS
    capsys.readouterr()
