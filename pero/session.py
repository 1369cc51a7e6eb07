"""Conversation model: turns, tool calls and the append-only session."""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterator

ContentPart = dict[str, Any]


def new_tool_call_id() -> str:
    """Generate a collision-resistant tool call id."""
    return f"call_{uuid.uuid4().hex}"


@dataclass
class ToolCall:
    """A tool call requested by the LLM."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def arguments_json(self) -> str:
        """Arguments encoded the way chat-completions backends expect them."""
        return json.dumps(self.arguments, ensure_ascii=False)


@dataclass
class Turn:
    """One role-tagged unit of conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str | list[ContentPart] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    # User turns keep their pre-interpolation text for header rendering.
    raw: str | None = None
    reasoning: str | None = None
    annotations: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_tool_request(self) -> bool:
        return self.role == "assistant" and bool(self.tool_calls)

    @property
    def text(self) -> str:
        """Plain text view of the content."""
        if self.raw is not None:
            return self.raw
        if isinstance(self.content, str):
            return self.content
        if not self.content:
            return ""
        return "".join(
            str(part.get("text", ""))
            for part in self.content
            if part.get("type") == "text"
        )


class Session:
    """Ordered, append-only sequence of turns."""

    def __init__(self, turns: list[Turn] | None = None):
        self._turns: list[Turn] = list(turns or [])

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def extended(self, turns: list[Turn]) -> "Session":
        """Return a new session with ``turns`` appended."""
        return Session([*self._turns, *turns])

    def copy(self) -> "Session":
        return Session(self._turns)

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Session):
            return self._turns == other._turns
        if isinstance(other, list):
            return self._turns == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Session({self._turns!r})"
