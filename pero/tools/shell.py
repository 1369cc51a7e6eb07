"""Bash tool executor: command templates run as local subprocesses."""

import asyncio
import json
import os
import re
import signal
from typing import Any

from pero.exceptions import MissingParameterError, ToolExecutionError, ToolTimeoutError
from pero.logging import get_logger
from pero.tools.base import Aborted, BashExecutor, ToolResult, wait_cancellable

log = get_logger(__name__)

_PLACEHOLDER_RE = re.compile(r"{{(\w+)}}")
_TERMINATE_GRACE_SECONDS = 2.0


def stringify_argument(value: Any) -> str:
    """Arguments arrive as JSON values; commands want text."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def format_command(command_template: str, parameters: dict[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders.

    Raises:
        MissingParameterError: a placeholder has no matching parameter
    """

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if parameters.get(key) is None:
            raise MissingParameterError(key, command_template)
        return stringify_argument(parameters[key])

    return _PLACEHOLDER_RE.sub(substitute, command_template)


def _signal_process_group(process: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        pass
    except PermissionError:
        process.send_signal(sig)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """SIGTERM the command's process group, then SIGKILL if it lingers."""
    if process.returncode is not None:
        return
    _signal_process_group(process, signal.SIGTERM)
    try:
        await asyncio.wait_for(process.wait(), timeout=_TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        _signal_process_group(process, signal.SIGKILL)
        await process.wait()


async def run_bash(
    name: str,
    executor: BashExecutor,
    arguments: dict[str, Any],
    timeout_ms: int | None = None,
    abort_event: asyncio.Event | None = None,
) -> ToolResult:
    """Run a bash tool.

    Args:
        name: Tool name (for errors and logs)
        executor: Command template and options
        arguments: Arguments from the tool call
        timeout_ms: Effective timeout; ``executor.timeout`` wins when set
        abort_event: Set to kill the command early

    Returns:
        ToolResult with the command's stdout

    Raises:
        MissingParameterError: template placeholder without argument
        ToolTimeoutError: the command outlived its timeout
        ToolExecutionError: non-zero exit, abort, or spawn failure
    """
    command = format_command(executor.command, arguments)
    timeout = executor.timeout if executor.timeout is not None else timeout_ms

    stdin_data: bytes | None = None
    if executor.stdin_param:
        value = arguments.get(executor.stdin_param)
        stdin_data = stringify_argument(value).encode("utf-8") if value is not None else b""

    if abort_event is not None and abort_event.is_set():
        raise ToolExecutionError(name, "Execution aborted")

    log.info("Executing bash tool", tool=name, command=command, timeout_ms=timeout)
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        raise ToolExecutionError(name, str(e)) from e

    try:
        stdout, stderr = await wait_cancellable(
            process.communicate(stdin_data),
            timeout_ms=timeout,
            abort_event=abort_event,
        )
    except asyncio.TimeoutError:
        await _terminate(process)
        raise ToolTimeoutError(name, timeout or 0) from None
    except Aborted:
        await _terminate(process)
        raise ToolExecutionError(name, "Execution aborted") from None
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    stdout_text = stdout.decode("utf-8", errors="replace")
    stderr_text = stderr.decode("utf-8", errors="replace").strip()

    if process.returncode != 0:
        detail = stderr_text or stdout_text.strip() or "no output"
        raise ToolExecutionError(name, f"exit code {process.returncode}: {detail}")

    output = stdout_text
    if stderr_text:
        output += f"\n[stderr] {stderr_text}"
    return ToolResult(success=True, content=output)
