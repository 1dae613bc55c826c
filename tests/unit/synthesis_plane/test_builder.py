"""
Unit tests for the build stage, its tool decoding and the per-task build context.

Coverage:
- Files come only from tool calls; free text is never parsed as files.
- First occurrence of a path wins; ``finalize_project`` carries no files.
- Paths that normalize to nothing are recorded as rejected, never raised.
- README generation when the build lacks one.
- Text mode uses the text-response model with tools disabled.
"""

from __future__ import annotations

import pytest

from forge_orchestrator.constants import TEXT_RESPONSE_MAX_OUTPUT_TOKENS, TOOL_CREATE_PROJECT
from forge_orchestrator.domain.models import (
    ExecutionPlan,
    NormalizedToolCall,
    PlanFile,
    ProjectMode,
    Task,
)
from forge_orchestrator.synthesis_plane.build_context import BuildContext
from forge_orchestrator.synthesis_plane.builder import BuildStage, generate_readme
from forge_orchestrator.synthesis_plane.invocation import InvocationPath
from forge_orchestrator.synthesis_plane.model_routing import ModelRoutes
from forge_orchestrator.synthesis_plane.tools import files_from_tool_call


def _plan(mode: ProjectMode = ProjectMode.WEBSITE) -> ExecutionPlan:
    return ExecutionPlan(
        mode=mode,
        task_summary="Quiz App",
        file_manifest=(PlanFile("index.html"), PlanFile("README.md")),
    )


def test_create_project_entries_are_decoded_in_order_and_malformed_skipped() -> None:
    call = NormalizedToolCall(
        name="create_project",
        args={
            "projectName": "quiz",
            "files": [
                {"path": "index.html", "content": "<html></html>"},
                {"path": "", "content": "nameless"},
                {"path": "app.js"},
                "not-a-file",
                {"path": "styles/main.css", "content": "body{}"},
            ],
        },
    )

    extracted = files_from_tool_call(call)

    assert [item.path for item in extracted] == ["index.html", "styles/main.css"]


def test_build_context_first_path_wins_and_finalize_is_recorded() -> None:
    context = BuildContext(task_id="task-1")
    added = context.record_tool_calls(
        [
            NormalizedToolCall(
                name="create_project",
                args={"projectName": "Quiz", "files": [{"path": "./a.js", "content": "one"}]},
            ),
            NormalizedToolCall(name="create_file", args={"path": "a.js", "content": "two"}),
            NormalizedToolCall(name="finalize_project", args={"projectName": "Other"}),
        ]
    )

    assert added == 1
    assert context.snapshot()["a.js"] == "one"
    assert context.duplicates == ("a.js",)
    assert context.project_name == "Quiz"
    assert context.finalized is True
    assert context.tool_names == ["create_project", "create_file", "finalize_project"]


def test_build_context_rejects_paths_that_normalize_to_nothing() -> None:
    context = BuildContext(task_id="task-1")

    added = context.record_tool_calls(
        [
            NormalizedToolCall(
                name="create_project",
                args={
                    "files": [
                        {"path": "./", "content": "x"},
                        {"path": "././", "content": "y"},
                        {"path": "index.html", "content": "<html></html>"},
                    ]
                },
            )
        ]
    )

    assert added == 1
    assert context.rejected == ("./", "././")
    assert list(context.snapshot()) == ["index.html"]
    assert context.add_file("./", "z") is False


def test_generate_readme_is_mode_aware() -> None:
    web = generate_readme("Quiz App", ["index.html"])
    python = generate_readme("CLI Tool", ["main.py"], mode=ProjectMode.PYTHON)

    assert web.startswith("# Quiz App")
    assert "- `index.html`" in web
    assert "Open `index.html`" in web
    assert "python main.py" in python


@pytest.mark.asyncio
async def test_code_build_forces_create_project_and_collects_files(
    scripted_invocation, payloads, models
) -> None:
    layer, provider = scripted_invocation(
        payloads.files({"index.html": "<html></html>", "README.md": "# Quiz\n\nplenty of text"})
    )
    stage = BuildStage(layer, models=models, max_output_tokens=32000)

    result = await stage.run(Task("Build a quiz app"), _plan())

    request = provider.requests[0]
    assert request.tools_enabled is True
    assert request.tool_choice == TOOL_CREATE_PROJECT
    assert request.max_output_tokens == 32000
    assert result.artifacts.paths == ("index.html", "README.md")
    assert result.readme_generated is False
    assert result.project_name == "demo"
    assert result.usage.total_tokens == 500
    assert result.invocation_path is InvocationPath.SUCCESS


@pytest.mark.asyncio
async def test_missing_readme_is_generated(scripted_invocation, payloads, models) -> None:
    layer, _ = scripted_invocation(payloads.files({"index.html": "<html></html>"}))
    stage = BuildStage(layer, models=models)

    result = await stage.run(Task("Build a quiz app"), _plan())

    assert result.readme_generated is True
    assert "README.md" in result.artifacts
    assert "- `index.html`" in result.artifacts["README.md"]


@pytest.mark.asyncio
async def test_lowercase_readme_suppresses_generation(
    scripted_invocation, payloads, models
) -> None:
    layer, _ = scripted_invocation(
        payloads.files({"index.html": "<html></html>", "readme.md": "# notes"})
    )
    result = await BuildStage(layer, models=models).run(Task("x"), _plan())

    assert result.readme_generated is False
    assert result.artifacts.paths == ("index.html", "readme.md")


@pytest.mark.asyncio
async def test_free_text_is_never_parsed_as_files(scripted_invocation, payloads, models) -> None:
    fenced = "```html\n<!DOCTYPE html><html></html>\n```"
    layer, _ = scripted_invocation(payloads.text(fenced))

    result = await BuildStage(layer, models=models).run(Task("Build a page"), _plan())

    assert len(result.artifacts) == 0
    assert result.text == fenced
    assert result.readme_generated is False


@pytest.mark.asyncio
async def test_text_mode_uses_text_response_model_without_tools(
    scripted_invocation, payloads
) -> None:
    layer, provider = scripted_invocation(payloads.text("Paris is the capital of France."))
    routes = ModelRoutes(
        planner="claude-sonnet-4-20250514",
        builder="claude-sonnet-4-20250514",
        verifier="claude-sonnet-4-20250514",
        text_response="claude-3-5-haiku-20241022",
    )

    result = await BuildStage(layer, models=routes).run(
        Task("What is the capital of France?"), _plan(ProjectMode.TEXT)
    )

    request = provider.requests[0]
    assert request.model == "claude-3-5-haiku-20241022"
    assert request.tools_enabled is False
    assert request.prompt == "What is the capital of France?"
    assert request.max_output_tokens == TEXT_RESPONSE_MAX_OUTPUT_TOKENS
    assert result.text == "Paris is the capital of France."
    assert len(result.artifacts) == 0


def test_max_output_tokens_must_be_positive(models) -> None:
    with pytest.raises(ValueError):
        BuildStage(object(), models=models, max_output_tokens=0)  # type: ignore[arg-type]
