"""Terminal tool for running shell commands in the workspace."""

import asyncio
import os
import re
import shlex
from typing import Any

from corex_agent.config import get_config
from corex_agent.logging import get_logger
from corex_agent.tools.registry import Tool, ToolResult

log = get_logger(__name__)

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*$")
_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&"}
_SHELL_WRAPPER_TOKENS = {"sudo", "command", "builtin", "nohup", "time"}
_MAX_OUTPUT_CHARS = 10000


def _compile_shell_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def _split_shell_segments(command: str) -> list[list[str]]:
    """Split a command into token lists separated by control operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""

    segments: list[list[str]] = []
    current: list[str] = []
    for token in lexer:
        if token in _SHELL_SEPARATOR_TOKENS:
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _segment_base_command(tokens: list[str]) -> str:
    """Executable token of a segment, skipping wrappers and env assignments."""
    for token in tokens:
        token = token.strip()
        if not token or token in _SHELL_WRAPPER_TOKENS:
            continue
        if _ASSIGNMENT_RE.match(token) and "/" not in token:
            continue
        return token
    return ""


def is_blocked_shell_command(command: str, blocked_patterns: list[str]) -> tuple[bool, str]:
    """Match a command against blocked patterns.

    Patterns containing whitespace are searched in every segment's text;
    single-word patterns are matched against each segment's base command.
    """
    cleaned = (command or "").strip()
    if not cleaned:
        return True, "Command is empty"

    try:
        segments = _split_shell_segments(cleaned)
    except ValueError:
        return True, "Command is not parseable"

    segment_texts = [" ".join(tokens) for tokens in segments]
    base_commands = [base for tokens in segments if (base := _segment_base_command(tokens))]
    if not base_commands:
        return True, "Command is not parseable"

    for raw_pattern in blocked_patterns or []:
        pattern = (raw_pattern or "").strip()
        if not pattern:
            continue
        compiled = _compile_shell_pattern(pattern)
        if re.search(r"\s", pattern):
            if any(compiled.search(text) for text in segment_texts):
                return True, f"Command matches blocked pattern: {pattern}"
        elif any(compiled.match(base) for base in base_commands):
            return True, f"Command matches blocked pattern: {pattern}"
    return False, ""


class RunTerminalTool(Tool):
    """Execute shell commands."""

    name = "run_terminal"
    description = "Run a shell command in the workspace root and return its output."
    parameters = {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute",
            },
        },
        "required": ["command"],
    }

    def __init__(self):
        self.config = get_config()
        # Registry timeout sits slightly above the process timeout so the
        # process is killed before the registry gives up on it.
        self.timeout_seconds = float(self.config.tools.terminal.timeout) + 5.0

    async def execute(self, command: str, **kwargs: Any) -> ToolResult:
        blocked, reason = is_blocked_shell_command(command, self.config.tools.terminal.blocked)
        if blocked:
            log.warning("Blocked shell command", command=command, reason=reason)
            return ToolResult(success=False, error=f"Command blocked: {reason}")

        timeout = max(1, int(self.config.tools.terminal.timeout))
        root = kwargs.get("_root")

        try:
            log.info("Running shell command", command=command, timeout=timeout)
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(root) if root else None,
                env=os.environ.copy(),
            )
            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                return ToolResult(success=False, error=f"Command timed out after {timeout}s")

            stdout_text = stdout.decode("utf-8", errors="replace").strip()
            stderr_text = stderr.decode("utf-8", errors="replace").strip()

            output = stdout_text
            if stderr_text:
                output += f"\n[stderr] {stderr_text}"
            if len(output) > _MAX_OUTPUT_CHARS:
                output = output[:_MAX_OUTPUT_CHARS] + f"\n... [truncated, {len(output)} total chars]"

            if process.returncode != 0:
                return ToolResult(
                    success=False,
                    data=output,
                    error=f"Command exited with code {process.returncode}: {output or '[no output]'}",
                )
            return ToolResult(success=True, data=output or "[no output]")

        except Exception as e:
            log.error("Shell command failed", command=command, error=str(e))
            return ToolResult(success=False, error=str(e))
