"""Command-line interface router for forge-orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Final

import yaml

from forge_orchestrator.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from forge_orchestrator.control_plane import (
    CapacityGate,
    JobOutcome,
    JobRunner,
    PipelineOrchestrator,
)
from forge_orchestrator.control_plane.job_runner import admission_poll_from_ms
from forge_orchestrator.domain.models import (
    ArtifactSet,
    PipelineOutcome,
    PipelineResult,
    PipelineStep,
    ProjectMode,
    StepEvent,
    Task,
)
from forge_orchestrator.integration_plane import ZipPackager
from forge_orchestrator.observability import setup_logging, shutdown_logging
from forge_orchestrator.planning import PlanStage
from forge_orchestrator.synthesis_plane import (
    BuildStage,
    InvocationLayer,
    ModelRoutes,
    PromptTemplateEngine,
    RetryPolicy,
)
from forge_orchestrator.synthesis_plane.providers import (
    ProviderRegistry,
    build_provider_registry,
    estimate_cost,
)
from forge_orchestrator.ui.render import CLIRenderer
from forge_orchestrator.utils.fs import load_text_tree
from forge_orchestrator.verification_plane import RepairLoop, validate_artifacts

SAMPLES_RESOURCE: Final[str] = "samples.yaml"

_OUTCOME_EXIT_CODES: Final[dict[PipelineOutcome, int]] = {
    PipelineOutcome.PACKAGED: 0,
    PipelineOutcome.TEXT: 0,
    PipelineOutcome.EMPTY_BUILD: 1,
    PipelineOutcome.PACKAGING_FAILED: 1,
    PipelineOutcome.INVOCATION_FAILED: 3,
}


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class Pipeline:
    orchestrator: PipelineOrchestrator
    models: ModelRoutes
    capacity: int
    admission_poll_ms: int


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="forge",
        description=(
            "forge-orchestrator: turn a task description into a verified, packaged project.\n\n"
            "Common workflows:\n"
            "  forge run --prompt 'Build a weather dashboard'\n"
            "  forge run --sample portfolio --json\n"
            "  forge batch prompts.txt\n"
            "  forge validate builds/weather-dashboard\n"
            "  forge config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to forge TOML config (default: ./forge.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument("--json", action="store_true", help="Emit JSON output.")
    common.add_argument(
        "--log-level",
        default=None,
        help="Override observability.log_level (DEBUG, INFO, WARNING, ERROR).",
    )
    common.add_argument(
        "--verbose", "-v", action="store_true", default=False, help="Show detailed output."
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", parents=[common], help="Run one task through the pipeline"
    )
    source = run_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--prompt", default=None, help="Task description text.")
    source.add_argument("--sample", default=None, help="Key of a bundled sample prompt.")
    run_parser.add_argument(
        "--budget", type=float, default=0.0, help="Budget hint in USD passed to the planner."
    )
    run_parser.add_argument(
        "--output-dir", default=None, help="Override pipeline.output_dir for this run."
    )
    run_parser.set_defaults(handler=_cmd_run)

    batch_parser = subparsers.add_parser(
        "batch", parents=[common], help="Run one task per line under the capacity gate"
    )
    batch_parser.add_argument("prompts_file", help="Text file with one prompt per line")
    batch_parser.add_argument(
        "--output-dir", default=None, help="Override pipeline.output_dir for this batch."
    )
    batch_parser.set_defaults(handler=_cmd_batch)

    validate_parser = subparsers.add_parser(
        "validate", parents=[common], help="Run the programmatic validator over a directory"
    )
    validate_parser.add_argument("directory", help="Project directory to validate")
    validate_parser.add_argument(
        "--mode",
        default=ProjectMode.WEBSITE.value,
        choices=[mode.value for mode in ProjectMode if mode is not ProjectMode.TEXT],
        help="Rule set to apply (default: website).",
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Print the redacted effective config"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_pipeline(
    config: Mapping[str, Any],
    *,
    registry: ProviderRegistry | None = None,
    output_dir: str | Path | None = None,
) -> Pipeline:
    """Assemble stages, invocation layer and packager from an effective config."""

    retry = config["retry"]
    pipeline_cfg = config["pipeline"]
    capacity_cfg = config["capacity"]

    models = ModelRoutes.from_config(config)
    invocation = InvocationLayer(
        registry if registry is not None else build_provider_registry(config["providers"]),
        policy=RetryPolicy(
            max_attempts=int(retry["max_attempts"]),
            base_delay_seconds=retry["base_delay_ms"] / 1000.0,
            max_delay_seconds=retry["max_delay_ms"] / 1000.0,
            fallback_no_tools=bool(retry["fallback_no_tools"]),
        ),
    )
    templates = PromptTemplateEngine()
    orchestrator = PipelineOrchestrator(
        PlanStage(invocation, models=models, templates=templates),
        BuildStage(
            invocation,
            models=models,
            templates=templates,
            max_output_tokens=int(config["generation"]["builder_max_tokens"]),
        ),
        RepairLoop(invocation, models=models, templates=templates),
        ZipPackager(output_dir if output_dir is not None else pipeline_cfg["output_dir"]),
        invocation_timeout_seconds=float(pipeline_cfg["invocation_timeout_seconds"]),
    )
    return Pipeline(
        orchestrator=orchestrator,
        models=models,
        capacity=int(capacity_cfg["max_concurrent_jobs"]),
        admission_poll_ms=int(capacity_cfg["admission_poll_ms"]),
    )


def load_samples() -> dict[str, str]:
    raw = resources.files("forge_orchestrator.ui").joinpath(SAMPLES_RESOURCE).read_text(
        encoding="utf-8"
    )
    parsed = yaml.safe_load(raw) or {}
    if not isinstance(parsed, Mapping):
        raise CLIError(f"{SAMPLES_RESOURCE} must map sample keys to prompts", exit_code=4)
    return {str(key): str(value) for key, value in parsed.items()}


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    prompt = _resolve_prompt(args)
    try:
        task = Task(raw_text=prompt, budget_hint=float(args.budget))
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    pipeline = build_pipeline(config, output_dir=args.output_dir)
    renderer = CLIRenderer(verbose=bool(args.verbose))

    def _on_step(step: PipelineStep, event: StepEvent) -> None:
        if not args.json:
            renderer.text(f"  [{step.value}] {event.duration_ms} ms")

    setup_logging(config["observability"])
    try:
        result = asyncio.run(pipeline.orchestrator.run(task, on_step_complete=_on_step))
    finally:
        shutdown_logging()

    payload = _result_payload(result, pipeline.models)
    if args.json:
        _emit_json(payload)
    else:
        _render_result(renderer, result, payload)
    return _OUTCOME_EXIT_CODES[result.outcome]


def _cmd_batch(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    prompts_path = Path(args.prompts_file)
    try:
        lines = prompts_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise CLIError(f"unable to read prompts file {prompts_path}: {exc}", exit_code=2) from exc
    tasks = [Task(raw_text=line.strip()) for line in lines if line.strip()]
    if not tasks:
        raise CLIError(f"no prompts found in {prompts_path}", exit_code=2)

    pipeline = build_pipeline(config, output_dir=args.output_dir)
    runner = JobRunner(
        pipeline.orchestrator,
        CapacityGate(pipeline.capacity),
        poll=admission_poll_from_ms(pipeline.admission_poll_ms),
    )

    setup_logging(config["observability"])
    try:
        outcomes = asyncio.run(runner.run_all(tasks))
    finally:
        shutdown_logging()

    payload = {
        "command": "batch",
        "jobs": [_job_payload(outcome, pipeline.models) for outcome in outcomes],
    }
    if args.json:
        _emit_json(payload)
    else:
        renderer = CLIRenderer(verbose=bool(args.verbose))
        rows = [
            [
                outcome.task_id,
                outcome.result.outcome.value if outcome.result is not None else "error",
                str(outcome.result.total_duration_ms) if outcome.result is not None else "-",
                outcome.error or "",
            ]
            for outcome in outcomes
        ]
        renderer.table(["task", "outcome", "ms", "error"], rows)
    return max(
        (
            _OUTCOME_EXIT_CODES[outcome.result.outcome] if outcome.result is not None else 4
            for outcome in outcomes
        ),
        default=0,
    )


def _cmd_validate(args: argparse.Namespace) -> int:
    directory = Path(args.directory)
    try:
        artifacts = ArtifactSet(load_text_tree(directory))
    except (NotADirectoryError, ValueError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    report = validate_artifacts(artifacts, mode=ProjectMode.parse(args.mode))
    if args.json:
        _emit_json(
            {
                "command": "validate",
                "directory": str(directory),
                "mode": args.mode,
                "files": list(artifacts.paths),
                "passed": report.passed,
                "issues": list(report.issues),
            }
        )
    else:
        renderer = CLIRenderer(verbose=bool(args.verbose))
        renderer.kv("Directory", directory)
        renderer.kv("Files", len(artifacts))
        renderer.kv("Result", "passed" if report.passed else f"{len(report.issues)} issue(s)")
        if report.issues:
            renderer.section("Issues:")
            renderer.items(list(report.issues))
    return 0 if report.passed else 1


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    print(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(
            args.config_path, profile=args.profile, cli_overrides=_cli_overrides(args)
        )
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if getattr(args, "log_level", None):
        overrides["observability.log_level"] = args.log_level
    return overrides


def _resolve_prompt(args: argparse.Namespace) -> str:
    if args.sample is not None:
        samples = load_samples()
        if args.sample not in samples:
            known = ", ".join(sorted(samples))
            raise CLIError(f"unknown sample {args.sample!r}; expected one of: {known}", 2)
        return samples[args.sample]
    prompt = args.prompt.strip() if isinstance(args.prompt, str) else ""
    if not prompt:
        raise CLIError("--prompt must not be empty", exit_code=2)
    return prompt


def _result_payload(result: PipelineResult, models: ModelRoutes) -> dict[str, Any]:
    payload: dict[str, Any] = {"command": "run", **result.to_dict()}
    payload["estimated_cost_usd"] = round(estimate_cost(models.builder, result.total_usage), 6)
    return payload


def _job_payload(outcome: JobOutcome, models: ModelRoutes) -> dict[str, Any]:
    if outcome.result is None:
        return {"task_id": outcome.task_id, "error": outcome.error}
    payload = _result_payload(outcome.result, models)
    payload.pop("command")
    payload["admission_waits"] = outcome.admission_waits
    return payload


def _render_result(
    renderer: CLIRenderer,
    result: PipelineResult,
    payload: Mapping[str, Any],
) -> None:
    renderer.section("Result")
    renderer.kv("Task", result.task_id)
    renderer.kv("Outcome", result.outcome.value)
    renderer.kv("Mode", result.mode.value)
    renderer.kv("Total time", f"{result.total_duration_ms} ms")
    usage = result.total_usage
    renderer.kv(
        "Tokens",
        f"prompt={usage.prompt_tokens} completion={usage.completion_tokens} "
        f"total={usage.total_tokens}",
    )
    renderer.kv("Estimated cost", f"${payload['estimated_cost_usd']:.4f}")
    if result.package is not None and result.package.archive_path:
        renderer.kv("Archive", result.package.archive_path)
    if result.artifacts is not None:
        renderer.section("Files:")
        renderer.items(list(result.artifacts.paths))
    renderer.section("Response:")
    renderer.text(result.text_response)


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False))


__all__ = [
    "CLIError",
    "Pipeline",
    "build_parser",
    "build_pipeline",
    "load_samples",
    "run_cli",
]
