"""Tools package for Corex."""

from corex_agent.config import get_config
from corex_agent.exceptions import ConfigurationError
from corex_agent.llm import LLMProvider
from corex_agent.tools.registry import (
    Tool,
    ToolRegistry,
    ToolResult,
)
from corex_agent.tools.read import ReadFileTool
from corex_agent.tools.write import WriteFileTool
from corex_agent.tools.list_files import ListFilesTool
from corex_agent.tools.glob import GlobSearchTool
from corex_agent.tools.grep import GrepSearchTool
from corex_agent.tools.terminal import RunTerminalTool
from corex_agent.tools.plan import PlanTaskTool

BUILTIN_TOOLS: dict[str, type[Tool]] = {
    "read_file": ReadFileTool,
    "write_file": WriteFileTool,
    "list_files": ListFilesTool,
    "glob_search": GlobSearchTool,
    "grep_search": GrepSearchTool,
    "run_terminal": RunTerminalTool,
    "plan_task": PlanTaskTool,
}


def register_default_tools(
    registry: ToolRegistry,
    enabled: list[str] | None = None,
    provider: LLMProvider | None = None,
) -> ToolRegistry:
    """Register the built-in tools named in ``enabled`` (default: config).

    ``provider`` is handed to tools that call the model themselves.
    """
    names = enabled if enabled is not None else get_config().tools.enabled
    for name in names:
        tool_cls = BUILTIN_TOOLS.get(name)
        if tool_cls is None:
            raise ConfigurationError(f"Unknown built-in tool: {name}")
        if tool_cls is PlanTaskTool:
            registry.register(PlanTaskTool(provider))
        else:
            registry.register(tool_cls())
    return registry


__all__ = [
    "BUILTIN_TOOLS",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "register_default_tools",
    "ReadFileTool",
    "WriteFileTool",
    "ListFilesTool",
    "GlobSearchTool",
    "GrepSearchTool",
    "RunTerminalTool",
    "PlanTaskTool",
]
