"""Agent loop: backend round-trips with concurrent tool execution."""

import asyncio
from dataclasses import dataclass, replace

from pero.exceptions import TooManyToolCallsError
from pero.llm import LLMProvider, LLMResponse
from pero.logging import get_logger
from pero.session import Session, ToolCall, Turn, new_tool_call_id
from pero.tools.base import ToolResult
from pero.tools.registry import ToolRegistry

log = get_logger(__name__)

DEFAULT_MAX_TOOL_DEPTH = 20


@dataclass(frozen=True)
class AgentRunState:
    """Session and tool-call depth of one step of the loop."""

    session: Session
    depth: int = 0

    def advance(self, turns: list[Turn]) -> "AgentRunState":
        return AgentRunState(session=self.session.extended(turns), depth=self.depth + 1)

    def finish(self, turns: list[Turn]) -> "AgentRunState":
        return AgentRunState(session=self.session.extended(turns), depth=self.depth)


def assign_missing_ids(tool_calls: list[ToolCall]) -> list[ToolCall]:
    """Give every call a unique id, generating one where the backend did not."""
    seen: set[str] = set()
    result: list[ToolCall] = []
    for call in tool_calls:
        if not call.id or call.id in seen:
            call = replace(call, id=new_tool_call_id())
        seen.add(call.id)
        result.append(call)
    return result


class Agent:
    """Drive a session to a final answer, running requested tools."""

    def __init__(
        self,
        provider: LLMProvider,
        tools: ToolRegistry | None = None,
        max_depth: int = DEFAULT_MAX_TOOL_DEPTH,
    ):
        self.provider = provider
        self.tools = tools or ToolRegistry()
        self.max_depth = max_depth

    async def run(self, session: Session, abort_event: asyncio.Event | None = None) -> Session:
        """Complete ``session`` and return it extended with the new turns.

        Raises:
            TooManyToolCallsError: the backend kept asking for tools past the ceiling
            LLMError: backend failure
        """
        state = AgentRunState(session=session.copy())
        definitions = self.tools.get_definitions()

        while True:
            log.debug("Awaiting completion", depth=state.depth, turns=len(state.session))
            response = await self.provider.complete(state.session.turns, definitions or None)

            if not response.tool_calls:
                return state.finish(self._answer_turns(response)).session

            if state.depth >= self.max_depth:
                log.error("Tool call depth exceeded", depth=state.depth, max_depth=self.max_depth)
                raise TooManyToolCallsError(self.max_depth)

            calls = assign_missing_ids(response.tool_calls)
            results = await self._run_tool_calls(calls, abort_event)

            request = Turn(role="assistant", tool_calls=calls, reasoning=response.reasoning)
            tool_turns = [
                Turn(role="tool", content=result.as_turn_content(), tool_call_id=call.id, name=call.name)
                for call, result in zip(calls, results)
            ]
            state = state.advance([request, *tool_turns])

    @staticmethod
    def _answer_turns(response: LLMResponse) -> list[Turn]:
        turns = [response.to_turn()]
        turns.extend(extra.to_turn() for extra in response.extra_choices if not extra.tool_calls)
        return turns

    async def _run_tool_calls(
        self,
        calls: list[ToolCall],
        abort_event: asyncio.Event | None,
    ) -> list[ToolResult]:
        """Run a batch concurrently; results keep the order of ``calls``."""
        log.info("Executing tool calls", tools=[call.name for call in calls])
        return list(await asyncio.gather(
            *(self.tools.execute(call, abort_event=abort_event) for call in calls)
        ))
