"""List tool for browsing a directory."""

from typing import Any

from corex_agent.logging import get_logger
from corex_agent.tools.registry import Tool, ToolResult, resolve_path

log = get_logger(__name__)

_SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}


class ListFilesTool(Tool):
    """List directory entries."""

    name = "list_files"
    description = "List files and folders in a directory of the workspace."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to list (default: workspace root)",
            },
            "recursive": {
                "type": "boolean",
                "description": "Descend into sub-directories",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of entries (default: 200)",
            },
        },
        "required": [],
    }

    async def execute(
        self,
        path: str = ".",
        recursive: bool = False,
        limit: int = 200,
        **kwargs: Any,
    ) -> ToolResult:
        try:
            root = resolve_path(path or ".", kwargs.get("_root"))
            if not root.exists():
                return ToolResult(success=False, error=f"Directory not found: {path}")
            if not root.is_dir():
                return ToolResult(success=False, error=f"Not a directory: {path}")

            iterator = root.rglob("*") if recursive else root.iterdir()
            entries: list[str] = []
            for item in sorted(iterator):
                if any(part in _SKIP_DIRS for part in item.relative_to(root).parts):
                    continue
                label = item.relative_to(root).as_posix()
                entries.append(f"{label}/" if item.is_dir() else label)
                if len(entries) >= int(limit):
                    break

            return ToolResult(success=True, data={"path": str(root), "entries": entries})

        except Exception as e:
            log.error("List failed", path=path, error=str(e))
            return ToolResult(success=False, error=str(e))
