"""
forge-orchestrator — response normalizer

File: src/forge_orchestrator/synthesis_plane/providers/normalize.py
Last updated: 2026-10-19

Purpose
- Collapse heterogeneous provider response shapes into one ``NormalizedResponse``.

Accepted shapes
- Step-based results (``steps[].toolCalls`` / ``steps[].content`` / ``steps[].toolResults``).
- Top-level ``toolCalls`` / ``tool_calls`` lists, including OpenAI ``{function: {...}}`` entries.
- Content-part lists: Anthropic ``text``/``tool_use`` blocks and ``tool-call`` parts.
- OpenAI Responses ``output`` items (``function_call`` and ``message``) and chat ``choices``.

Functional requirements
- Mappings and attribute objects are read alike; camelCase and snake_case keys are accepted.
- Unparseable JSON tool arguments raise ``ToolArgumentsError`` (retryable).
- Missing usage yields zeros.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from forge_orchestrator.domain.models import NormalizedResponse, NormalizedToolCall, TokenUsage
from forge_orchestrator.synthesis_plane.providers.base import parse_tool_arguments

_TOOL_PART_TYPES = frozenset({"tool-call", "tool_use", "function_call"})
_TEXT_PART_TYPES = frozenset({"text", "output_text"})

_PROMPT_TOKEN_KEYS = ("promptTokens", "prompt_tokens", "inputTokens", "input_tokens")
_COMPLETION_TOKEN_KEYS = (
    "completionTokens",
    "completion_tokens",
    "outputTokens",
    "output_tokens",
)
_TOTAL_TOKEN_KEYS = ("totalTokens", "total_tokens")
_STOP_REASON_KEYS = ("finishReason", "finish_reason", "stop_reason")


def normalize_response(raw: object, *, provider: str = "provider") -> NormalizedResponse:
    """Return the uniform view of one raw provider response."""

    steps = _read_sequence(raw, "steps")
    results_by_id = _collect_tool_results(raw, steps)

    tool_calls: list[NormalizedToolCall] = []
    for step in steps:
        step_calls = _read_sequence(step, "toolCalls", "tool_calls")
        if not step_calls:
            step_calls = _tool_parts(_read_sequence(step, "content"))
        tool_calls.extend(_normalize_calls(step_calls, results_by_id, provider=provider))

    if not tool_calls:
        top_level = _read_sequence(raw, "toolCalls", "tool_calls")
        if not top_level:
            top_level = _tool_parts(_read_sequence(raw, "content"))
        if not top_level:
            top_level = _tool_parts(_read_sequence(raw, "output"))
        if not top_level:
            top_level = _read_sequence(_first_choice_message(raw), "tool_calls", "toolCalls")
        tool_calls.extend(_normalize_calls(top_level, results_by_id, provider=provider))

    text = _extract_text(raw)
    if not text.strip():
        for step in reversed(steps):
            step_text = _read_str(step, "text")
            if step_text.strip():
                text = step_text
                break

    return NormalizedResponse(
        text=text,
        tool_calls=tuple(tool_calls),
        usage=_extract_usage(raw),
        stop_reason=_extract_stop_reason(raw, steps),
    )


def _collect_tool_results(raw: object, steps: Sequence[object]) -> dict[str, object]:
    results: dict[str, object] = {}
    sources = [*(_read_sequence(step, "toolResults", "tool_results") for step in steps)]
    sources.append(_read_sequence(raw, "toolResults", "tool_results"))
    for entries in sources:
        for entry in entries:
            call_id = _read_str(entry, "toolCallId", "tool_call_id", "call_id", "id")
            value = _read_value(entry, "result", "output")
            if call_id and value is not None:
                results[call_id] = value
    return results


def _tool_parts(parts: Sequence[object]) -> list[object]:
    return [part for part in parts if _read_str(part, "type") in _TOOL_PART_TYPES]


def _normalize_calls(
    calls: Sequence[object],
    results_by_id: Mapping[str, object],
    *,
    provider: str,
) -> list[NormalizedToolCall]:
    normalized: list[NormalizedToolCall] = []
    for call in calls:
        function = _read_value(call, "function")
        name = _read_str(call, "toolName", "tool_name", "name")
        if not name and function is not None:
            name = _read_str(function, "name")
        if not name:
            continue

        raw_args = _read_value(call, "args", "input", "arguments")
        if raw_args is None and function is not None:
            raw_args = _read_value(function, "arguments")

        call_id = _read_str(call, "toolCallId", "tool_call_id", "call_id", "id") or None
        normalized.append(
            NormalizedToolCall(
                name=name,
                args=parse_tool_arguments(raw_args, provider=provider, tool_name=name),
                result=results_by_id.get(call_id) if call_id is not None else None,
                call_id=call_id,
            )
        )
    return normalized


def _extract_text(raw: object) -> str:
    text = _read_str(raw, "text")
    if text:
        return text

    text = _join_text_parts(_read_sequence(raw, "content"))
    if text:
        return text

    text = _read_str(raw, "output_text", "outputText")
    if text:
        return text

    for item in _read_sequence(raw, "output"):
        if _read_str(item, "type") == "message":
            text += _join_text_parts(_read_sequence(item, "content"))
    if text:
        return text

    message = _first_choice_message(raw)
    if message is not None:
        content = _read_value(message, "content")
        if isinstance(content, str):
            return content
        return _join_text_parts(_read_sequence(message, "content"))
    return ""


def _join_text_parts(parts: Sequence[object]) -> str:
    chunks: list[str] = []
    for part in parts:
        if isinstance(part, str):
            chunks.append(part)
            continue
        if _read_str(part, "type") in _TEXT_PART_TYPES:
            chunks.append(_read_str(part, "text"))
    return "".join(chunks)


def _extract_usage(raw: object) -> TokenUsage:
    usage = _read_value(raw, "usage", "totalUsage", "total_usage")
    if usage is None:
        return TokenUsage()
    prompt_tokens = _read_int(usage, *_PROMPT_TOKEN_KEYS)
    completion_tokens = _read_int(usage, *_COMPLETION_TOKEN_KEYS)
    total_tokens = _read_int(usage, *_TOTAL_TOKEN_KEYS)
    if total_tokens == 0:
        total_tokens = prompt_tokens + completion_tokens
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
    )


def _extract_stop_reason(raw: object, steps: Sequence[object]) -> str | None:
    reason = _read_str(raw, *_STOP_REASON_KEYS)
    if reason:
        return reason

    choices = _read_sequence(raw, "choices")
    if choices:
        reason = _read_str(choices[0], *_STOP_REASON_KEYS)
        if reason:
            return reason

    incomplete = _read_value(raw, "incomplete_details")
    if incomplete is not None:
        reason = _read_str(incomplete, "reason")
        if reason:
            return reason

    if steps:
        reason = _read_str(steps[-1], *_STOP_REASON_KEYS)
        if reason:
            return reason
    return None


def _first_choice_message(raw: object) -> object | None:
    choices = _read_sequence(raw, "choices")
    if not choices:
        return None
    return _read_value(choices[0], "message")


def _read_value(source: object, *names: str) -> object | None:
    if source is None:
        return None
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name)
        else:
            value = getattr(source, name, None)
        if value is not None:
            return value
    return None


def _read_str(source: object, *names: str) -> str:
    value = _read_value(source, *names)
    return value if isinstance(value, str) else ""


def _read_int(source: object, *names: str) -> int:
    value = _read_value(source, *names)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def _read_sequence(source: object, *names: str) -> list[object]:
    value = _read_value(source, *names)
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return list(value)
    return []


__all__ = ["normalize_response"]
