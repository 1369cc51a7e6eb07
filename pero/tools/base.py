"""Tool executor types, tool results and cancellation helpers."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, TypeVar

from pydantic import BaseModel, model_validator

T = TypeVar("T")


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self

    def as_turn_content(self) -> str:
        """Text handed back to the model as the tool turn content."""
        if self.success:
            return self.content
        return f"Error: {self.error}"


@dataclass(frozen=True)
class BashExecutor:
    """Run a shell command template with the call arguments substituted."""

    command: str
    stdin_param: str | None = None
    timeout: int | None = None  # milliseconds


@dataclass(frozen=True)
class RemoteExecutor:
    """Forward the call to a tool on a connected MCP server."""

    server_name: str
    tool_name: str
    timeout: int | None = None  # milliseconds


ToolExecutor = BashExecutor | RemoteExecutor


class Aborted(Exception):
    """Raised by ``wait_cancellable`` when the abort event fires first."""


async def cancel_task(task: asyncio.Task[Any] | None) -> None:
    """Cancel task and await it to avoid pending task warnings."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        pass


async def wait_cancellable(
    work: Awaitable[T],
    timeout_ms: int | None = None,
    abort_event: asyncio.Event | None = None,
) -> T:
    """Await ``work`` bounded by a timeout and an abort event.

    The work task is cancelled when either fires.

    Raises:
        asyncio.TimeoutError: the timeout expired
        Aborted: the abort event was set
    """
    work_task = asyncio.ensure_future(work)
    abort_wait_task: asyncio.Task[bool] | None = None
    if abort_event is not None:
        abort_wait_task = asyncio.create_task(abort_event.wait())
    try:
        wait_tasks: set[asyncio.Future[Any]] = {work_task}
        if abort_wait_task is not None:
            wait_tasks.add(abort_wait_task)
        done, _ = await asyncio.wait(
            wait_tasks,
            timeout=timeout_ms / 1000 if timeout_ms is not None else None,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if work_task in done:
            return work_task.result()
        await cancel_task(work_task)
        if abort_wait_task is not None and abort_wait_task in done:
            raise Aborted()
        raise asyncio.TimeoutError()
    except asyncio.CancelledError:
        await cancel_task(work_task)
        raise
    finally:
        await cancel_task(abort_wait_task)
