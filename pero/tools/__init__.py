"""Tools package for pero."""

from pero.tools.base import BashExecutor, RemoteExecutor, ToolExecutor, ToolResult
from pero.tools.mcp import McpClient, McpServerSpec, disconnect_all
from pero.tools.registry import (
    ParsedToolsConfig,
    ToolRegistry,
    parse_tools_config,
    read_tools_config,
    resolve_auto_tools_path,
)
from pero.tools.shell import format_command, run_bash

__all__ = [
    "BashExecutor",
    "RemoteExecutor",
    "ToolExecutor",
    "ToolResult",
    "McpClient",
    "McpServerSpec",
    "disconnect_all",
    "ParsedToolsConfig",
    "ToolRegistry",
    "parse_tools_config",
    "read_tools_config",
    "resolve_auto_tools_path",
    "format_command",
    "run_bash",
]
