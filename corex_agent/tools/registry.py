"""Tool registry and base tool class."""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, model_validator

from corex_agent.exceptions import ToolError, ToolExecutionError, ToolNotFoundError
from corex_agent.llm import ToolDefinition
from corex_agent.logging import get_logger

log = get_logger(__name__)


class ToolResult(BaseModel):
    """Result from tool execution. Failures are data, never exceptions."""

    success: bool = True
    data: Any = None
    error: str | None = None
    tool_name: str = ""

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = str(self.data or "").strip()
            self.error = fallback or "Tool execution failed"
        return self

    @classmethod
    def failure(cls, tool_name: str, error: str) -> "ToolResult":
        return cls(success=False, error=error, tool_name=tool_name)

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe mapping folded back into the conversation."""
        payload: dict[str, Any] = {"success": self.success}
        if self.success:
            payload["data"] = self.data
        else:
            payload["error"] = self.error
        return payload

    def render(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False, indent=2, default=str)


class Tool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}
    timeout_seconds: float = 30.0

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool.

        Args:
            **kwargs: Tool-specific arguments plus ``_root`` (workspace path)

        Returns:
            ToolResult with success status and data
        """
        pass

    def get_definition(self) -> ToolDefinition:
        """Definition for backends with native tool calling."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def manifest_parameters(self) -> dict[str, dict[str, Any]]:
        """Parameter schema as ``name -> {type, description, required}``."""
        properties = self.parameters.get("properties", {}) or {}
        required = set(self.parameters.get("required", []) or [])
        return {
            param: {
                "type": schema.get("type", "string"),
                "description": schema.get("description", ""),
                "required": param in required,
            }
            for param, schema in properties.items()
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate tool arguments against schema.

        Raises:
            ToolExecutionError if a required argument is missing
        """
        required = self.parameters.get("required", [])
        for field in required:
            if field not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {field}",
                )


class ToolRegistry:
    """Registry for managing available tools."""

    def __init__(self, root: Path | str | None = None):
        self._tools: dict[str, Tool] = {}
        self._root = Path(root or Path.cwd()).expanduser().resolve()

    @property
    def root(self) -> Path:
        """Workspace root that relative tool paths resolve against."""
        return self._root

    def set_root(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve()

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        log.debug("Registering tool", tool=tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        """Unregister a tool.

        Args:
            name: Tool name to unregister
        """
        self._tools.pop(name, None)

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return name in self._tools

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def list_tools(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[ToolDefinition]:
        return [tool.get_definition() for tool in self._tools.values()]

    def describe_tools(self) -> list[dict[str, Any]]:
        """Name, description and parameter schema of every tool."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.manifest_parameters(),
            }
            for tool in self._tools.values()
        ]

    def manifest(self) -> str:
        """Textual tools manifest embedded in the system prompt."""
        lines: list[str] = []
        for entry in self.describe_tools():
            lines.append(f"- **{entry['name']}**: {entry['description']}")
            params = [
                f"`{param}` ({info['type']}{', required' if info['required'] else ''}): {info['description']}"
                for param, info in entry["parameters"].items()
            ]
            if params:
                lines.append("  Parameters: " + ", ".join(params))
        return "\n".join(lines)

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name.

        Unknown tools, invalid arguments, timeouts and exceptions raised by
        the tool are all returned as failed ``ToolResult`` records.
        """
        try:
            tool = self.get(name)
            tool.validate_arguments(arguments)
        except ToolError as e:
            log.warning("Tool call rejected", tool=name, error=str(e))
            return ToolResult.failure(name, str(e))

        timeout_seconds = max(1.0, float(getattr(tool, "timeout_seconds", 30.0) or 30.0))
        try:
            log.info("Executing tool", tool=name, args=arguments)
            result = await asyncio.wait_for(
                tool.execute(**arguments, _root=self._root),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            timeout_label = int(timeout_seconds) if timeout_seconds.is_integer() else timeout_seconds
            log.error("Tool execution timed out", tool=name, timeout=timeout_label)
            return ToolResult.failure(name, f"Execution timed out after {timeout_label}s")
        except TypeError as e:
            log.error("Tool called with unexpected arguments", tool=name, error=str(e))
            return ToolResult.failure(name, f"Invalid arguments: {e}")
        except Exception as e:
            log.error("Tool execution failed", tool=name, error=str(e))
            return ToolResult.failure(name, str(e))

        if not isinstance(result, ToolResult):
            return ToolResult.failure(name, "Tool returned invalid result payload")
        if not result.tool_name:
            result.tool_name = name
        log.info("Tool executed", tool=name, success=result.success)
        return result


def resolve_path(path: str, root: Path | None) -> Path:
    """Resolve ``path`` against the workspace root."""
    candidate = Path(path).expanduser()
    if not candidate.is_absolute() and root is not None:
        candidate = root / candidate
    return candidate.resolve()

