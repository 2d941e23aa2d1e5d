import asyncio
from pathlib import Path
from typing import Any

import pytest

from corex_agent.config import get_config
from corex_agent.exceptions import ConfigurationError, ToolExecutionError, ToolNotFoundError
from corex_agent.tools import BUILTIN_TOOLS, Tool, ToolRegistry, ToolResult, register_default_tools


class _EchoTool(Tool):
    name = "echo"
    description = "Echo the message back"
    parameters = {
        "type": "object",
        "properties": {"message": {"type": "string", "description": "Text to echo"}},
        "required": ["message"],
    }

    async def execute(self, message: str, **kwargs: Any) -> ToolResult:
        return ToolResult(success=True, data={"message": message, "root": str(kwargs.get("_root"))})


class _ExplodingTool(Tool):
    name = "explode"
    description = "Always raises"

    async def execute(self, **kwargs: Any) -> ToolResult:
        raise ToolExecutionError(self.name, "boom")


class _SlowTool(Tool):
    name = "slow"
    description = "Never finishes in time"
    timeout_seconds = 1.0

    async def execute(self, **kwargs: Any) -> ToolResult:
        await asyncio.sleep(5)
        return ToolResult(success=True)


class _BadReturnTool(Tool):
    name = "bad_return"
    description = "Returns the wrong type"

    async def execute(self, **kwargs: Any):
        return "not a result"


def test_tool_result_populates_error_from_data_on_failure():
    result = ToolResult(success=False, data="command failed with exit code 1")

    assert result.error == "command failed with exit code 1"


def test_tool_result_keeps_explicit_error_on_failure():
    result = ToolResult(success=False, data="stderr output", error="explicit error")

    assert result.error == "explicit error"


def test_tool_result_payload_shape():
    ok = ToolResult(success=True, data={"n": 1})
    failed = ToolResult.failure("x", "nope")

    assert ok.to_payload() == {"success": True, "data": {"n": 1}}
    assert failed.to_payload() == {"success": False, "error": "nope"}
    assert '"success": false' in failed.render()


@pytest.mark.asyncio
async def test_execute_passes_root_and_arguments(tmp_path: Path):
    registry = ToolRegistry(tmp_path)
    registry.register(_EchoTool())

    result = await registry.execute("echo", {"message": "hi"})

    assert result.success is True
    assert result.tool_name == "echo"
    assert result.data == {"message": "hi", "root": str(tmp_path.resolve())}


@pytest.mark.asyncio
async def test_execute_never_raises(tmp_path: Path):
    registry = ToolRegistry(tmp_path)
    for tool in (_EchoTool(), _ExplodingTool(), _BadReturnTool()):
        registry.register(tool)

    unknown = await registry.execute("missing", {})
    missing_arg = await registry.execute("echo", {})
    unexpected_arg = await registry.execute("echo", {"message": "x", "bogus": 1})
    exploded = await registry.execute("explode", {})
    bad_return = await registry.execute("bad_return", {})

    assert unknown.success is False and "Tool not found" in unknown.error
    assert missing_arg.success is False and "Missing required argument: message" in missing_arg.error
    assert unexpected_arg.success is True
    assert exploded.success is False and "boom" in exploded.error
    assert bad_return.success is False and "invalid result" in bad_return.error


@pytest.mark.asyncio
async def test_execute_times_out(tmp_path: Path):
    registry = ToolRegistry(tmp_path)
    registry.register(_SlowTool())

    result = await registry.execute("slow", {})

    assert result.success is False
    assert result.error == "Execution timed out after 1s"


def test_get_unknown_tool_raises():
    with pytest.raises(ToolNotFoundError):
        ToolRegistry().get("nothing")


def test_manifest_lists_tools_and_parameters():
    registry = ToolRegistry()
    registry.register(_EchoTool())

    manifest = registry.manifest()

    assert "- **echo**: Echo the message back" in manifest
    assert "`message` (string, required): Text to echo" in manifest


def test_register_requires_name():
    class _Nameless(_EchoTool):
        name = ""

    with pytest.raises(ValueError):
        ToolRegistry().register(_Nameless())


def test_register_default_tools_follows_config():
    get_config().tools.enabled = ["read_file", "grep_search"]

    registry = register_default_tools(ToolRegistry())

    assert registry.list_tools() == ["read_file", "grep_search"]


def test_register_default_tools_all_builtins():
    registry = register_default_tools(ToolRegistry(), enabled=list(BUILTIN_TOOLS))

    assert set(registry.list_tools()) == set(BUILTIN_TOOLS)
    assert all(d.parameters.get("type") == "object" for d in registry.get_definitions())


def test_register_default_tools_rejects_unknown_name():
    with pytest.raises(ConfigurationError):
        register_default_tools(ToolRegistry(), enabled=["read_file", "teleport"])


def test_unregister_and_has_tool():
    registry = ToolRegistry()
    registry.register(_EchoTool())

    assert registry.has_tool("echo")
    registry.unregister("echo")
    registry.unregister("echo")
    assert registry.has_tool("echo") is False
    assert registry.list_tools() == []


@pytest.mark.asyncio
async def test_set_root_changes_resolution(tmp_path: Path):
    registry = ToolRegistry()
    registry.register(_EchoTool())
    registry.set_root(tmp_path / "project")

    result = await registry.execute("echo", {"message": "x"})

    assert registry.root == (tmp_path / "project").resolve()
    assert result.data["root"] == str((tmp_path / "project").resolve())


def test_describe_tools_reports_schema():
    registry = ToolRegistry()
    registry.register(_EchoTool())

    assert registry.describe_tools() == [{
        "name": "echo",
        "description": "Echo the message back",
        "parameters": {"message": {"type": "string", "description": "Text to echo", "required": True}},
    }]
