"""MCP client for remote tool servers spawned over stdio."""

import asyncio
import json
import os
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from pydantic import BaseModel, Field

from pero.exceptions import ConnectError, ToolExecutionError, ToolTimeoutError
from pero.logging import get_logger
from pero.tools.base import Aborted, wait_cancellable

log = get_logger(__name__)

DEFAULT_INIT_TIMEOUT = 30.0


class McpServerSpec(BaseModel):
    """One entry of the ``_mcp_servers`` map in a tools config."""

    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None
    enabled: bool = True
    timeout: int | None = None  # milliseconds, per tool call


def render_call_result(result: Any) -> str:
    """Join MCP content items: text verbatim, anything else as JSON."""
    content = getattr(result, "content", None)
    if not isinstance(content, list):
        return json.dumps(result.model_dump(mode="json") if hasattr(result, "model_dump") else result)

    pieces: list[str] = []
    for item in content:
        if getattr(item, "type", None) == "text":
            pieces.append(item.text)
        elif hasattr(item, "model_dump"):
            pieces.append(json.dumps(item.model_dump(mode="json", exclude_none=True)))
        else:
            pieces.append(json.dumps(item))
    return "\n".join(pieces)


class McpClient:
    """A live connection to one MCP server."""

    def __init__(self, server_name: str, session: ClientSession, stack: AsyncExitStack):
        self.server_name = server_name
        self.session = session
        self._stack = stack

    @classmethod
    async def connect(
        cls,
        server_name: str,
        spec: McpServerSpec,
        init_timeout: float = DEFAULT_INIT_TIMEOUT,
    ) -> "McpClient":
        """Spawn the server and perform the MCP handshake.

        The server's stderr goes to the null device so diagnostics cannot
        leak into the document being built.

        Raises:
            ConnectError: spawn, transport or handshake failure
        """
        params = StdioServerParameters(
            command=spec.command,
            args=spec.args,
            env={**os.environ, **(spec.env or {})},
        )
        stack = AsyncExitStack()
        try:
            errlog = stack.enter_context(open(os.devnull, "w", encoding="utf-8"))
            read_stream, write_stream = await stack.enter_async_context(
                stdio_client(params, errlog=errlog)
            )
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await asyncio.wait_for(session.initialize(), timeout=init_timeout)
        except asyncio.CancelledError:
            await stack.aclose()
            raise
        except Exception as e:
            try:
                await stack.aclose()
            except Exception as close_error:
                log.debug("Cleanup after failed connect raised", server=server_name, error=str(close_error))
            reason = "handshake timed out" if isinstance(e, asyncio.TimeoutError) else str(e) or type(e).__name__
            raise ConnectError(server_name, reason) from e

        log.info("Connected MCP server", server=server_name, command=spec.command)
        return cls(server_name, session, stack)

    async def list_tools(self) -> list[dict[str, Any]]:
        """Return ``[{name, description, inputSchema}]`` for the server's tools."""
        response = await self.session.list_tools()
        return [
            {
                "name": tool.name,
                "description": tool.description or "",
                "inputSchema": tool.inputSchema or {"type": "object", "properties": {}},
            }
            for tool in response.tools
        ]

    async def call_tool(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        timeout_ms: int | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> str:
        """Invoke a tool and return its content as text.

        Raises:
            ToolTimeoutError: the call outlived ``timeout_ms`` and was cancelled
            ToolExecutionError: abort, transport failure or an error result
        """
        label = f"{self.server_name}/{tool_name}"
        try:
            result = await wait_cancellable(
                self.session.call_tool(tool_name, arguments),
                timeout_ms=timeout_ms,
                abort_event=abort_event,
            )
        except asyncio.TimeoutError:
            raise ToolTimeoutError(label, timeout_ms or 0) from None
        except Aborted:
            raise ToolExecutionError(label, "Execution aborted") from None
        except Exception as e:
            raise ToolExecutionError(label, str(e) or type(e).__name__) from e

        text = render_call_result(result)
        if getattr(result, "isError", False):
            raise ToolExecutionError(label, text or "remote tool reported an error")
        return text

    async def close(self) -> None:
        await self._stack.aclose()


async def disconnect_all(clients: dict[str, McpClient]) -> None:
    """Close every client; one failing close does not stop the others.

    Closing runs in the calling task: the stdio transport's cancel scopes
    must be exited by the task that entered them.
    """
    for name, client in list(clients.items()):
        try:
            await client.close()
        except Exception as e:
            log.warning("Failed to close MCP server", server=name, error=str(e))
    clients.clear()
