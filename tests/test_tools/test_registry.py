from pathlib import Path

import pytest

from pero.exceptions import ConfigurationError, MissingParameterError
from pero.session import ToolCall
from pero.tools.base import BashExecutor, RemoteExecutor
from pero.tools.registry import (
    ToolRegistry,
    parse_tools_config,
    read_tools_config,
    resolve_auto_tools_path,
)
from pero.tools.shell import format_command

TOOLS_YAML = """
echo:
  description: Echo text back
  parameters:
    text: Text to echo
  command: echo {{text}}
hidden:
  command: "true"
  enabled: false
_mcp_servers:
  files:
    command: npx
    args: ["-y", "file-server"]
    timeout: 5000
  disabled_server:
    command: nothing
    enabled: false
"""


def test_parse_tools_config_builds_catalog_and_executors():
    parsed = parse_tools_config(TOOLS_YAML)

    assert parsed.api == [
        {
            "name": "echo",
            "description": "Echo text back",
            "parameters": {
                "type": "object",
                "properties": {"text": {"type": "string", "description": "Text to echo"}},
                "required": ["text"],
            },
        }
    ]
    assert parsed.executors == {"echo": BashExecutor(command="echo {{text}}")}
    assert list(parsed.mcp_servers) == ["files"]
    assert parsed.mcp_servers["files"].args == ["-y", "file-server"]
    assert parsed.mcp_servers["files"].timeout == 5000


def test_parse_tools_config_rejects_invalid_entries():
    with pytest.raises(ConfigurationError):
        parse_tools_config("broken:\n  description: no command here\n")
    with pytest.raises(ConfigurationError):
        parse_tools_config("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        parse_tools_config("key: [unclosed\n")


def test_read_tools_config_merges_later_files_over_earlier(tmp_path: Path):
    first = tmp_path / "first.yaml"
    first.write_text("a:\n  command: echo first\nb:\n  command: echo b\n", encoding="utf-8")
    second = tmp_path / "second.yaml"
    second.write_text("a:\n  command: echo second\n", encoding="utf-8")

    parsed = read_tools_config([first, second])

    assert parsed.executors["a"].command == "echo second"
    assert parsed.executors["b"].command == "echo b"


def test_read_tools_config_missing_file(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        read_tools_config([tmp_path / "absent.yaml"])


def test_resolve_auto_tools_path_prefers_working_directory(tmp_path: Path):
    default = tmp_path / "home" / "tools.yaml"
    default.parent.mkdir()
    default.write_text("{}", encoding="utf-8")
    workdir = tmp_path / "work"
    workdir.mkdir()

    assert resolve_auto_tools_path(workdir, default) == default

    (workdir / "tools.yml").write_text("{}", encoding="utf-8")
    assert resolve_auto_tools_path(workdir, default) == workdir / "tools.yml"


def test_resolve_auto_tools_path_none_found(tmp_path: Path):
    assert resolve_auto_tools_path(tmp_path, tmp_path / "missing.yaml") is None


def test_format_command_substitutes_and_stringifies():
    assert format_command("echo {{a}} {{b}} {{a}}", {"a": "x", "b": 2}) == "echo x 2 x"


def test_format_command_missing_parameter():
    with pytest.raises(MissingParameterError) as exc_info:
        format_command("cat {{path}}", {"other": "x"})

    assert exc_info.value.parameter == "path"
    assert str(exc_info.value) == "Missing parameter path in command cat {{path}}"


def test_registry_catalog_keeps_registration_order():
    registry = ToolRegistry()
    registry.register({"name": "b", "description": ""}, BashExecutor(command="true"))
    registry.register({"name": "a", "description": ""}, BashExecutor(command="true"))

    assert registry.list_tools() == ["b", "a"]
    assert registry.has_tool("a")
    assert not registry.has_tool("c")


def test_register_requires_name():
    with pytest.raises(ValueError):
        ToolRegistry().register({"description": "nameless"}, BashExecutor(command="true"))


@pytest.mark.asyncio
async def test_execute_unknown_tool_returns_failed_result():
    registry = ToolRegistry()

    result = await registry.execute(ToolCall(id="c1", name="nope"))

    assert result.success is False
    assert result.as_turn_content() == "Error: Tool not found: nope"


@pytest.mark.asyncio
async def test_execute_missing_parameter_returns_failed_result():
    registry = ToolRegistry()
    registry.register({"name": "echo"}, BashExecutor(command="echo {{text}}"))

    result = await registry.execute(ToolCall(id="c1", name="echo", arguments={}))

    assert result.success is False
    assert result.error == "Missing parameter text in command echo {{text}}"


@pytest.mark.asyncio
async def test_execute_remote_tool_without_server_returns_failed_result():
    registry = ToolRegistry()
    registry.register({"name": "read"}, RemoteExecutor(server_name="files", tool_name="read"))

    result = await registry.execute(ToolCall(id="c1", name="read"))

    assert result.success is False
    assert result.error == 'MCP server "files" not found'


@pytest.mark.asyncio
async def test_load_registers_bash_tools(tmp_path: Path):
    config = tmp_path / "tools.yaml"
    config.write_text("echo:\n  parameters:\n    text: t\n  command: echo {{text}}\n", encoding="utf-8")

    async with await ToolRegistry.load([config]) as registry:
        assert registry.list_tools() == ["echo"]
        result = await registry.execute(ToolCall(id="c1", name="echo", arguments={"text": "hi"}))

    assert result.success is True
    assert result.content == "hi\n"
