"""
Shared pytest fixtures: scripted provider, recording sleep and payload builders.

No test touches the network; every model call is served from a scripted deque.
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import pytest

from forge_orchestrator.domain.models import InvocationRequest
from forge_orchestrator.synthesis_plane.invocation import InvocationLayer, RetryPolicy
from forge_orchestrator.synthesis_plane.model_routing import ModelRoutes
from forge_orchestrator.synthesis_plane.providers.base import ProviderRegistry

MODEL = "claude-sonnet-4-20250514"


@dataclass(slots=True)
class ScriptedProvider:
    outcomes: deque[object]
    provider_name: str = "anthropic"
    requests: list[InvocationRequest] = field(default_factory=list)

    async def send(self, request: InvocationRequest) -> object:
        self.requests.append(request)
        if not self.outcomes:
            raise RuntimeError("scripted provider outcomes exhausted")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@dataclass(slots=True)
class SleepRecorder:
    calls: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class Payloads:
    """Raw provider response shapes understood by ``normalize_response``."""

    @staticmethod
    def text(
        text: str,
        *,
        prompt_tokens: int = 10,
        completion_tokens: int = 5,
        stop_reason: str | None = "end_turn",
    ) -> dict[str, object]:
        return {
            "text": text,
            "usage": {"input_tokens": prompt_tokens, "output_tokens": completion_tokens},
            "stop_reason": stop_reason,
        }

    @staticmethod
    def files(
        files: Mapping[str, str],
        *,
        project_name: str = "demo",
        prompt_tokens: int = 100,
        completion_tokens: int = 400,
        stop_reason: str | None = "tool_use",
    ) -> dict[str, object]:
        return {
            "content": [
                {
                    "type": "tool_use",
                    "id": "toolu_1",
                    "name": "create_project",
                    "input": {
                        "projectName": project_name,
                        "files": [
                            {"path": path, "content": content} for path, content in files.items()
                        ],
                    },
                }
            ],
            "usage": {"input_tokens": prompt_tokens, "output_tokens": completion_tokens},
            "stop_reason": stop_reason,
        }

    @staticmethod
    def malformed_tool_call() -> dict[str, object]:
        return {
            "toolCalls": [{"toolName": "create_project", "args": "{not json"}],
            "usage": {"promptTokens": 1, "completionTokens": 1},
        }

    @staticmethod
    def plan(
        mode: str = "website",
        *,
        summary: str = "Weather Dashboard",
        files: tuple[str, ...] = ("index.html", "styles/main.css", "scripts/app.js"),
    ) -> dict[str, object]:
        body = {
            "mode": mode,
            "taskSummary": summary,
            "techStack": {"styling": "tailwind", "interactivity": "alpine", "icons": True},
            "files": [{"path": path, "description": f"{path} file"} for path in files],
            "designNotes": "Calm blue palette.",
            "complexityEstimate": "low",
        }
        return Payloads.text(json.dumps(body), prompt_tokens=20, completion_tokens=30)


VALID_INDEX = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Weather</title>
  <link rel="stylesheet" href="styles/main.css">
</head>
<body>
  <main id="app"><h1>Weather</h1><button id="refresh">Refresh</button></main>
  <script src="scripts/app.js"></script>
</body>
</html>
"""

VALID_SITE: dict[str, str] = {
    "index.html": VALID_INDEX,
    "styles/main.css": (
        "body { margin: 0; font-family: system-ui, sans-serif; }\n"
        ".card { padding: 1rem; border-radius: 8px; }\n"
    ),
    "scripts/app.js": (
        "const button = document.getElementById('refresh');\n"
        "button.addEventListener('click', () => { document.title = 'Updated'; });\n"
    ),
    "README.md": (
        "# Weather Dashboard\n\nA small dashboard that shows the current forecast. "
        "Open index.html in a browser.\n"
    ),
}


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def payloads() -> type[Payloads]:
    return Payloads


@pytest.fixture
def models() -> ModelRoutes:
    return ModelRoutes.uniform(MODEL)


@pytest.fixture
def valid_site() -> dict[str, str]:
    return dict(VALID_SITE)


@pytest.fixture
def scripted_invocation(
    sleep_recorder: SleepRecorder,
) -> Callable[..., tuple[InvocationLayer, ScriptedProvider]]:
    """Build an ``InvocationLayer`` whose anthropic adapter replays ``outcomes`` in order."""

    def _make(
        *outcomes: object,
        policy: RetryPolicy | None = None,
    ) -> tuple[InvocationLayer, ScriptedProvider]:
        provider = ScriptedProvider(outcomes=deque(outcomes))
        registry = ProviderRegistry()
        registry.register("anthropic", lambda: provider)
        layer = InvocationLayer(
            registry,
            policy=policy if policy is not None else RetryPolicy(jitter_ratio=0.0),
            sleep=sleep_recorder,
            random_fn=lambda: 0.5,
        )
        return layer, provider

    return _make
