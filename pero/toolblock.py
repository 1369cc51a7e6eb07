"""Render the most recent tool-call phase as a block in the answer."""

import json
import re
from dataclasses import dataclass, field, replace
from typing import Literal

from pero.session import Session

IncludeToolMode = Literal["none", "call", "result"]
ToolsPlacement = Literal["top", "bottom"]

TOOLS_BLOCK_OPEN = "@@.tools"
THINK_BLOCK_OPEN = "@@.think"
BLOCK_CLOSE = "@@"

_NEEDS_QUOTE_RE = re.compile(r"[:#]")
_MIN_RESULT_CAP = 200
_SHRINK_FACTOR = 0.7
_MAX_SHRINK_ROUNDS = 5


@dataclass
class ToolCallEntry:
    """One tool call of the last phase, with its result if one came back."""

    name: str
    params: dict[str, str] = field(default_factory=dict)
    result: str | None = None


def _stringify(value: object) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


def extract_last_tool_phase(session: Session) -> list[ToolCallEntry]:
    """Collect the tool calls that led to the session's final answer."""
    turns = session.turns

    final_index = next(
        (i for i in range(len(turns) - 1, -1, -1)
         if turns[i].role == "assistant" and not turns[i].tool_calls),
        -1,
    )
    if final_index == -1:
        return []

    tools_index = next(
        (i for i in range(final_index - 1, -1, -1) if turns[i].is_tool_request),
        -1,
    )
    if tools_index == -1:
        return []

    results_by_id = {
        turn.tool_call_id: str(turn.content or "")
        for turn in turns[tools_index + 1:final_index]
        if turn.role == "tool" and turn.tool_call_id
    }

    entries: list[ToolCallEntry] = []
    for call in turns[tools_index].tool_calls or []:
        params = {key: _stringify(value) for key, value in (call.arguments or {}).items()}
        entries.append(ToolCallEntry(
            name=call.name or "unknown_tool",
            params=params,
            result=results_by_id.get(call.id),
        ))
    return entries


def _truncate(text: str, cap: int) -> str:
    if len(text) <= cap:
        return text
    return f"{text[:cap]}\n[truncated to {cap} chars; total={len(text)}]"


def _yaml_value(key: str, value: str) -> list[str]:
    if "\n" in value:
        return [f"  {key}: |", *(f"    {line}" for line in value.split("\n"))]
    rendered = json.dumps(value, ensure_ascii=False) if _NEEDS_QUOTE_RE.search(value) else value
    return [f"  {key}: {rendered}"]


def serialize_entries(entries: list[ToolCallEntry], mode: IncludeToolMode) -> str:
    """Minimal YAML for the tools block."""
    lines: list[str] = []
    for entry in entries:
        lines.append(f"- {entry.name}:")
        for key, value in entry.params.items():
            lines.extend(_yaml_value(key, value))
        if mode == "result" and entry.result is not None:
            lines.extend(_yaml_value("result", entry.result))
    return "\n".join(lines) + "\n"


def make_tools_block(
    entries: list[ToolCallEntry],
    mode: IncludeToolMode,
    max_per_result_chars: int = 22000,
    max_total_chars: int = 60000,
) -> str | None:
    """Render entries into a bounded ``@@.tools`` block, or None."""
    if mode == "none" or not entries:
        return None

    if mode == "result":
        local = [
            replace(e, result=_truncate(e.result, max_per_result_chars) if e.result is not None else None)
            for e in entries
        ]
    else:
        local = [replace(e, result=None) for e in entries]

    body = serialize_entries(local, mode)
    if len(body) > max_total_chars:
        if mode == "result":
            cap = max_per_result_chars
            rounds = 0
            while len(body) > max_total_chars and cap > _MIN_RESULT_CAP and rounds < _MAX_SHRINK_ROUNDS:
                cap = max(_MIN_RESULT_CAP, int(cap * _SHRINK_FACTOR))
                local = [
                    replace(e, result=_truncate(e.result, cap) if e.result is not None else None)
                    for e in entries
                ]
                body = serialize_entries(local, mode)
                rounds += 1
        if len(body) > max_total_chars:
            body = body[:max(0, max_total_chars - 64)] + f"\n[tools block truncated to {max_total_chars} chars]\n"

    return f"{TOOLS_BLOCK_OPEN}\n{body}{BLOCK_CLOSE}\n"


def insert_tools_block(
    assistant_text: str,
    tools_block: str | None,
    reasoning: str | None,
    include_reasoning: bool,
    placement: ToolsPlacement,
) -> str:
    """Splice the tools block and the reasoning block around the answer."""
    think_block = (
        f"\n{THINK_BLOCK_OPEN}\n{reasoning}\n{BLOCK_CLOSE}\n\n"
        if include_reasoning and reasoning
        else ""
    )

    if not tools_block:
        return f"\n{think_block}{assistant_text}" if think_block else assistant_text

    if placement == "top":
        return f"{tools_block}\n{think_block}{assistant_text}"
    return f"{assistant_text}{think_block}\n{tools_block}"
