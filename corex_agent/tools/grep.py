"""Grep tool for searching file contents."""

import asyncio
import re
from pathlib import Path
from typing import Any

from corex_agent.config import get_config
from corex_agent.logging import get_logger
from corex_agent.tools.registry import Tool, ToolResult, resolve_path

log = get_logger(__name__)

_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}


def _search(base: Path, regex: re.Pattern[str], include: str, max_matches: int) -> list[dict[str, Any]]:
    matches: list[dict[str, Any]] = []
    for file_path in sorted(base.rglob(include)):
        if not file_path.is_file():
            continue
        if any(part in _SKIP_DIRS for part in file_path.relative_to(base).parts):
            continue
        try:
            text = file_path.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError):
            continue
        for line_no, line in enumerate(text.splitlines(), start=1):
            if regex.search(line):
                matches.append({
                    "path": file_path.relative_to(base).as_posix(),
                    "line": line_no,
                    "text": line.strip()[:200],
                })
                if len(matches) >= max_matches:
                    return matches
    return matches


class GrepSearchTool(Tool):
    """Search file contents with a regular expression."""

    name = "grep_search"
    description = "Search text files in the workspace for a regular expression."
    parameters = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Regular expression (plain text works too)",
            },
            "include": {
                "type": "string",
                "description": "File glob to search (default: '*')",
            },
            "case_sensitive": {
                "type": "boolean",
                "description": "Match case (default: false)",
            },
        },
        "required": ["query"],
    }

    async def execute(
        self,
        query: str,
        include: str = "*",
        case_sensitive: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            regex = re.compile(query, flags)
        except re.error:
            regex = re.compile(re.escape(query), flags)

        try:
            base = resolve_path(".", kwargs.get("_root"))
            max_matches = get_config().tools.max_grep_matches
            loop = asyncio.get_running_loop()
            matches = await loop.run_in_executor(
                None,
                lambda: _search(base, regex, include or "*", max_matches),
            )
            return ToolResult(success=True, data={"query": query, "matches": matches})

        except Exception as e:
            log.error("Grep failed", query=query, error=str(e))
            return ToolResult(success=False, error=str(e))
