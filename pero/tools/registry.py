"""Tool registry: YAML tool configs, the advertised catalog and dispatch."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, assert_never

import yaml
from pydantic import BaseModel, Field, ValidationError

from pero.exceptions import (
    ConfigurationError,
    ConnectError,
    ServerNotFoundError,
    ToolError,
    ToolNotFoundError,
)
from pero.logging import get_logger
from pero.session import ToolCall
from pero.tools.base import BashExecutor, RemoteExecutor, ToolExecutor, ToolResult
from pero.tools.mcp import DEFAULT_INIT_TIMEOUT, McpClient, McpServerSpec, disconnect_all
from pero.tools.shell import run_bash

log = get_logger(__name__)

MCP_SERVERS_KEY = "_mcp_servers"
AUTO_TOOLS_FILENAMES = ("tools.yaml", "tools.yml")


class BashToolSpec(BaseModel):
    """A bash tool entry in a tools config."""

    description: str = ""
    parameters: dict[str, str] = Field(default_factory=dict)
    command: str
    stdin_param: str | None = None
    timeout: int | None = None  # milliseconds
    enabled: bool = True


@dataclass
class ParsedToolsConfig:
    """Bash catalog, executors and (not yet connected) MCP servers."""

    api: list[dict[str, Any]] = field(default_factory=list)
    executors: dict[str, ToolExecutor] = field(default_factory=dict)
    mcp_servers: dict[str, McpServerSpec] = field(default_factory=dict)

    def merge(self, other: "ParsedToolsConfig") -> "ParsedToolsConfig":
        return ParsedToolsConfig(
            api=[*self.api, *other.api],
            executors={**self.executors, **other.executors},
            mcp_servers={**self.mcp_servers, **other.mcp_servers},
        )


def bash_tool_definition(name: str, spec: BashToolSpec) -> dict[str, Any]:
    """Function-style definition; every parameter is a required string."""
    return {
        "name": name,
        "description": spec.description,
        "parameters": {
            "type": "object",
            "properties": {
                key: {"type": "string", "description": description}
                for key, description in spec.parameters.items()
            },
            "required": list(spec.parameters),
        },
    }


def parse_tools_config(text: str, source: str = "<tools config>") -> ParsedToolsConfig:
    """Parse one YAML tools config without connecting to anything.

    Raises:
        ConfigurationError: invalid YAML or tool entry
    """
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {source}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Tools config {source} must be a mapping")

    parsed = ParsedToolsConfig()
    for name, entry in raw.items():
        name = str(name)
        try:
            if name == MCP_SERVERS_KEY:
                for server_name, server_entry in (entry or {}).items():
                    server = McpServerSpec.model_validate(server_entry)
                    if not server.enabled:
                        log.debug("Skipping disabled MCP server", server=server_name)
                        continue
                    parsed.mcp_servers[str(server_name)] = server
                continue

            spec = BashToolSpec.model_validate(entry)
        except (ValidationError, AttributeError) as e:
            raise ConfigurationError(f"Invalid tool '{name}' in {source}: {e}") from e

        if not spec.enabled:
            log.debug("Skipping disabled tool", tool=name)
            continue
        parsed.api.append(bash_tool_definition(name, spec))
        parsed.executors[name] = BashExecutor(
            command=spec.command,
            stdin_param=spec.stdin_param,
            timeout=spec.timeout,
        )
    return parsed


def read_tools_config(paths: list[str | Path]) -> ParsedToolsConfig:
    """Read and merge tools configs in path order."""
    merged = ParsedToolsConfig()
    for path in paths:
        config_path = Path(path).expanduser()
        try:
            text = config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read tools config {config_path}: {e}") from e
        merged = merged.merge(parse_tools_config(text, source=str(config_path)))
    return merged


def resolve_auto_tools_path(cwd: Path | str, default_path: Path | str) -> Path | None:
    """Find ``tools.yaml``/``tools.yml`` in ``cwd``, else the default file."""
    for filename in AUTO_TOOLS_FILENAMES:
        candidate = Path(cwd) / filename
        if candidate.exists():
            return candidate
    default = Path(default_path).expanduser()
    return default if default.exists() else None


class ToolRegistry:
    """Catalog and dispatch table for one run.

    Owns the live MCP connections; use as an async context manager (or call
    ``close``) so they are torn down.
    """

    def __init__(self, default_timeout_ms: int | None = None):
        self._definitions: list[dict[str, Any]] = []
        self._executors: dict[str, ToolExecutor] = {}
        self._clients: dict[str, McpClient] = {}
        self.default_timeout_ms = default_timeout_ms

    @classmethod
    async def load(
        cls,
        paths: list[str | Path],
        default_timeout_ms: int | None = None,
        init_timeout: float = DEFAULT_INIT_TIMEOUT,
    ) -> "ToolRegistry":
        """Build a registry from tools configs, connecting MCP servers.

        A server that fails to connect is logged and skipped; its tools are
        not advertised.

        Raises:
            ConfigurationError: unreadable or invalid config
        """
        registry = cls(default_timeout_ms=default_timeout_ms)
        if not paths:
            return registry

        parsed = read_tools_config(paths)
        for definition in parsed.api:
            registry.register(definition, parsed.executors[definition["name"]])

        try:
            # Sequential: each transport must be closed by the task that opened it.
            for server_name, spec in parsed.mcp_servers.items():
                try:
                    await registry.connect_server(server_name, spec, init_timeout=init_timeout)
                except ConnectError as e:
                    log.warning("Skipping MCP server", server=server_name, error=str(e))
        except BaseException:
            await registry.close()
            raise

        log.info("Tools loaded", tools=registry.list_tools(), servers=list(registry._clients))
        return registry

    async def connect_server(
        self,
        server_name: str,
        spec: McpServerSpec,
        init_timeout: float = DEFAULT_INIT_TIMEOUT,
    ) -> None:
        """Connect one MCP server and register each of its tools."""
        client = await McpClient.connect(server_name, spec, init_timeout=init_timeout)
        self._clients[server_name] = client
        for tool in await client.list_tools():
            self.register(
                {
                    "name": tool["name"],
                    "description": tool["description"],
                    "parameters": tool["inputSchema"],
                },
                RemoteExecutor(server_name=server_name, tool_name=tool["name"], timeout=spec.timeout),
            )

    def register(self, definition: dict[str, Any], executor: ToolExecutor) -> None:
        """Advertise a tool and route its calls to ``executor``.

        Later registrations of the same name win the dispatch table.
        """
        name = definition.get("name")
        if not name:
            raise ValueError("Tool must have a name")
        log.debug("Registering tool", tool=name, kind=type(executor).__name__)
        self._definitions.append(definition)
        self._executors[name] = executor

    def has_tool(self, name: str) -> bool:
        return name in self._executors

    def get(self, name: str) -> ToolExecutor:
        """Get a tool executor by name.

        Raises:
            ToolNotFoundError if not found
        """
        if not self.has_tool(name):
            raise ToolNotFoundError(name)
        return self._executors[name]

    def list_tools(self) -> list[str]:
        return [definition["name"] for definition in self._definitions]

    def get_definitions(self) -> list[dict[str, Any]]:
        """Catalog advertised to the backend, in registration order."""
        return list(self._definitions)

    async def execute(self, call: ToolCall, abort_event: asyncio.Event | None = None) -> ToolResult:
        """Run one tool call; per-tool failures come back as failed results."""
        try:
            executor = self.get(call.name)
            if isinstance(executor, BashExecutor):
                return await run_bash(
                    call.name,
                    executor,
                    call.arguments,
                    timeout_ms=self.default_timeout_ms,
                    abort_event=abort_event,
                )
            elif isinstance(executor, RemoteExecutor):
                client = self._clients.get(executor.server_name)
                if client is None:
                    raise ServerNotFoundError(executor.server_name)
                content = await client.call_tool(
                    executor.tool_name,
                    call.arguments,
                    timeout_ms=executor.timeout,
                    abort_event=abort_event,
                )
                return ToolResult(success=True, content=content)
            else:
                assert_never(executor)
        except ToolError as e:
            log.warning("Tool execution failed", tool=call.name, call_id=call.id, error=str(e))
            return ToolResult(success=False, error=str(e))
        except Exception as e:
            log.error("Tool execution crashed", tool=call.name, call_id=call.id, error=str(e))
            return ToolResult(success=False, error=f"Tool '{call.name}' failed: {e}")

    async def close(self) -> None:
        """Disconnect every MCP server."""
        await disconnect_all(self._clients)

    async def __aenter__(self) -> "ToolRegistry":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
