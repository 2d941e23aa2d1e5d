"""Glob tool for finding files by pattern."""

import asyncio
import glob
from pathlib import Path
from typing import Any

from corex_agent.logging import get_logger
from corex_agent.tools.registry import Tool, ToolResult, resolve_path

log = get_logger(__name__)


class GlobSearchTool(Tool):
    """Find files by pattern."""

    name = "glob_search"
    description = "Find files matching a glob pattern."
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Glob pattern (e.g., '**/*.py', 'src/**/*.ts')",
            },
            "root": {
                "type": "string",
                "description": "Directory to search from (default: workspace root)",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of results (default: 100)",
            },
        },
        "required": ["pattern"],
    }

    async def execute(
        self,
        pattern: str,
        root: str | None = None,
        limit: int = 100,
        **kwargs: Any,
    ) -> ToolResult:
        """Find files matching pattern.

        Args:
            pattern: Glob pattern
            root: Optional directory, relative to the workspace root
            limit: Max results

        Returns:
            ToolResult with matching paths relative to the search directory
        """
        try:
            base = resolve_path(root or ".", kwargs.get("_root"))
            loop = asyncio.get_running_loop()
            matches = await loop.run_in_executor(
                None,
                lambda: sorted(glob.glob(pattern, root_dir=str(base), recursive=True)),
            )
            matches = [Path(m).as_posix() for m in matches[:int(limit)]]
            return ToolResult(success=True, data={"root": str(base), "matches": matches})

        except Exception as e:
            log.error("Glob failed", pattern=pattern, error=str(e))
            return ToolResult(success=False, error=str(e))
