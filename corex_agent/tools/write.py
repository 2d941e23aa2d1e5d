"""Write tool for writing file contents."""

from typing import Any

from corex_agent.logging import get_logger
from corex_agent.tools.registry import Tool, ToolResult, resolve_path

log = get_logger(__name__)


class WriteFileTool(Tool):
    """Create or overwrite files."""

    name = "write_file"
    description = "Create or overwrite a file with content. Parent folders are created."
    parameters = {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to write",
            },
            "content": {
                "type": "string",
                "description": "Full content of the file",
            },
            "append": {
                "type": "boolean",
                "description": "Append to the file instead of overwriting",
            },
        },
        "required": ["path", "content"],
    }

    async def execute(self, path: str, content: str, append: bool = False, **kwargs: Any) -> ToolResult:
        try:
            file_path = resolve_path(path, kwargs.get("_root"))
            file_path.parent.mkdir(parents=True, exist_ok=True)

            mode = "a" if append else "w"
            with open(file_path, mode, encoding="utf-8") as f:
                f.write(content)

            log.info("File written", path=str(file_path), chars=len(content), append=append)
            return ToolResult(
                success=True,
                data={
                    "path": str(file_path),
                    "chars": len(content),
                    "appended": bool(append),
                },
            )

        except Exception as e:
            log.error("Write failed", path=path, error=str(e))
            return ToolResult(success=False, error=str(e))
