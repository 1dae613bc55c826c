"""
Unit tests for the plan stage.

Coverage:
- Fence stripping and lenient field decoding.
- Baseline manifest entries per mode.
- Deterministic fallback plan on unparseable output; provider errors propagate.
"""

from __future__ import annotations

import pytest

from forge_orchestrator.constants import PLANNER_MAX_OUTPUT_TOKENS
from forge_orchestrator.domain.models import (
    ComplexityTier,
    DataStorage,
    ProjectMode,
    Runtime,
    Styling,
    Task,
)
from forge_orchestrator.planning.planner import (
    DEFAULT_TASK_SUMMARY,
    PlanParseError,
    PlanStage,
    fallback_plan,
    parse_plan,
    strip_code_fences,
)
from forge_orchestrator.synthesis_plane.providers.base import ProviderAuthenticationError


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_plan_reads_fields_and_adds_web_baseline() -> None:
    plan = parse_plan(
        """```json
        {
          "mode": "web-app",
          "taskSummary": "Habit Tracker",
          "techStack": {"styling": "vanilla-css", "dataStorage": "localStorage",
                        "charts": true, "icons": "yes"},
          "files": [{"path": "./scripts/app.js", "description": "Logic"},
                    {"path": "scripts/app.js", "description": "dupe"},
                    {"path": "", "description": "blank"},
                    "junk"],
          "designNotes": "Dark theme",
          "complexityEstimate": "high"
        }
        ```"""
    )

    assert plan.mode is ProjectMode.WEB_APP
    assert plan.task_summary == "Habit Tracker"
    assert plan.tech_stack.styling is Styling.VANILLA_CSS
    assert plan.tech_stack.data_storage is DataStorage.LOCALSTORAGE
    assert plan.tech_stack.charts is True
    assert plan.tech_stack.icons is False
    assert plan.complexity is ComplexityTier.HIGH
    assert plan.design_notes == "Dark theme"
    assert plan.paths == ("index.html", "scripts/app.js", "styles/main.css", "README.md")


def test_parse_plan_defaults_and_script_baseline() -> None:
    plan = parse_plan('{"mode": "python", "files": [{"path": "main.py"}]}')

    assert plan.task_summary == DEFAULT_TASK_SUMMARY
    assert plan.tech_stack.runtime is Runtime.PYTHON
    assert plan.complexity is ComplexityTier.MEDIUM
    assert plan.paths == ("main.py", "README.md")


def test_legacy_code_mode_maps_to_website() -> None:
    assert parse_plan('{"mode": "code", "taskSummary": "Site"}').mode is ProjectMode.WEBSITE


def test_text_mode_gets_no_baseline_files() -> None:
    plan = parse_plan('{"mode": "text", "taskSummary": "Answer"}')
    assert plan.mode is ProjectMode.TEXT
    assert plan.paths == ()


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        "[1, 2, 3]",
        '{"mode": "spreadsheet", "taskSummary": "x"}',
        '{"taskSummary": "no mode"}',
    ],
)
def test_parse_plan_rejects_unusable_output(raw: str) -> None:
    with pytest.raises(PlanParseError):
        parse_plan(raw)


def test_fallback_plan_is_a_generic_browser_project() -> None:
    task = Task("  " + "x" * 300)
    plan = fallback_plan(task)

    assert plan.mode is ProjectMode.WEBSITE
    assert len(plan.task_summary) == 120
    assert plan.tech_stack.icons is True
    assert plan.paths == ("index.html", "styles/main.css", "scripts/app.js", "README.md")


@pytest.mark.asyncio
async def test_plan_stage_returns_parsed_plan(scripted_invocation, payloads, models) -> None:
    layer, provider = scripted_invocation(payloads.plan("website", summary="Photo Portfolio"))
    stage = PlanStage(layer, models=models)

    result = await stage.run(Task("Build a portfolio website", budget_hint=25))

    assert result.used_fallback is False
    assert result.plan.task_summary == "Photo Portfolio"
    assert result.usage.total_tokens == 50
    request = provider.requests[0]
    assert request.tools_enabled is False
    assert request.max_output_tokens == PLANNER_MAX_OUTPUT_TOKENS
    assert "Job Budget: $25.00 USD" in request.prompt


@pytest.mark.asyncio
async def test_plan_stage_falls_back_without_retrying(
    scripted_invocation, payloads, models, sleep_recorder
) -> None:
    layer, provider = scripted_invocation(payloads.text("Sure! Here is my plan: build it."))
    result = await PlanStage(layer, models=models).run(Task("Build a weather dashboard"))

    assert result.used_fallback is True
    assert result.parse_error is not None
    assert result.plan.mode is ProjectMode.WEBSITE
    assert result.plan.task_summary == "Build a weather dashboard"
    assert result.usage.total_tokens == 15
    assert len(provider.requests) == 1
    assert sleep_recorder.calls == []


@pytest.mark.asyncio
async def test_plan_stage_propagates_provider_errors(scripted_invocation, models) -> None:
    layer, _ = scripted_invocation(ProviderAuthenticationError("bad key", provider="anthropic"))

    with pytest.raises(ProviderAuthenticationError):
        await PlanStage(layer, models=models).run(Task("anything"))
