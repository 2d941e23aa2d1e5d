"""Read tool for reading file contents."""

from pathlib import Path
from typing import Any

from corex_agent.config import get_config
from corex_agent.logging import get_logger
from corex_agent.tools.registry import Tool, ToolResult, resolve_path

log = get_logger(__name__)


class ReadFileTool(Tool):
    """Read file contents."""

    name = "read_file"
    description = "Read the contents of a file in the workspace."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to read",
            },
            "offset": {
                "type": "number",
                "description": "Line number to start reading from (1-indexed)",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of lines to read",
            },
        },
        "required": ["path"],
    }

    async def execute(
        self,
        path: str,
        offset: int | None = None,
        limit: int | None = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Read a file.

        Args:
            path: Path to file, relative to the workspace root
            offset: Optional 1-indexed start line
            limit: Optional line limit

        Returns:
            ToolResult with file contents
        """
        try:
            file_path = resolve_path(path, kwargs.get("_root"))

            if not file_path.exists():
                return ToolResult(success=False, error=f"File not found: {path}")
            if not file_path.is_file():
                return ToolResult(success=False, error=f"Not a file: {path}")

            max_chars = get_config().tools.max_read_chars
            file_size = file_path.stat().st_size
            if file_size > max_chars * 4:
                return ToolResult(
                    success=False,
                    error=f"File too large: {file_size} bytes",
                )

            content = file_path.read_text(encoding="utf-8", errors="replace")
            lines = content.splitlines()
            if offset:
                lines = lines[int(offset) - 1:]
            if limit:
                lines = lines[:int(limit)]
            content = "\n".join(lines)

            truncated = len(content) > max_chars
            if truncated:
                content = content[:max_chars]

            return ToolResult(
                success=True,
                data={
                    "path": str(file_path),
                    "content": content,
                    "lines": len(lines),
                    "truncated": truncated,
                },
            )

        except Exception as e:
            log.error("Read failed", path=path, error=str(e))
            return ToolResult(success=False, error=str(e))
