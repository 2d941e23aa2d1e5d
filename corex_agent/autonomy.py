"""Autonomy levels and the approval gate for tool calls.

Levels:
  1. Chat only - no tool execution at all.
  2. Suggestions - every tool call needs manual approval.
  3. Balanced (default) - read-only/planning tools run, the rest ask.
  4. Auto tools - everything runs except dangerous commands.
  5. Autonomous - everything runs without asking.

Dangerous-command matching is a case-insensitive substring check. It is a
soft guard against obvious mistakes, not a sandbox.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from corex_agent.exceptions import ConfigurationError
from corex_agent.logging import get_logger

log = get_logger(__name__)

MIN_LEVEL = 1
MAX_LEVEL = 5

# Tools whose ``command`` parameter is run by a shell.
COMMAND_TOOLS = frozenset({"run_terminal"})

# Tools that run without approval at level 3.
LEVEL3_SAFE_TOOLS = frozenset({"read_file", "list_files", "plan_task", "generate_code"})

LEVEL_DESCRIPTIONS = {
    1: "Chat Only - No tool execution",
    2: "Suggestions - Manual approval for all tools",
    3: "Balanced - Safe tools auto, others require approval",
    4: "Auto Tools - Most tools auto-execute",
    5: "Autonomous - All tools auto-execute (dangerous!)",
}


class AutonomyConfig(BaseModel):
    """Persisted approval policy, read once at the start of every turn."""

    level: int = Field(default=3, ge=MIN_LEVEL, le=MAX_LEVEL)
    auto_approve_tools: list[str] = [
        "read_file",
        "list_files",
        "plan_task",
        "glob_search",
        "grep_search",
    ]
    require_approval_tools: list[str] = []
    dangerous_patterns: list[str] = [
        "rm ",
        "del ",
        "format",
        "rmdir",
        "rd ",
        "shutdown",
        "reboot",
        "kill",
        "DROP TABLE",
        "DELETE FROM",
        "npm uninstall",
        "yarn remove",
        "pip uninstall",
    ]


def is_dangerous_command(command: str, patterns: list[str] | None = None) -> bool:
    """Return True when ``command`` contains any dangerous pattern (case-insensitive)."""
    if patterns is None:
        patterns = AutonomyConfig().dangerous_patterns
    lowered = (command or "").lower()
    return any(pattern.lower() in lowered for pattern in patterns if pattern)


def requires_approval(tool_name: str, parameters: dict[str, Any] | None, config: AutonomyConfig) -> bool:
    """Decide whether a tool call must wait for human approval.

    Rules are checked in order and the first match wins. A dangerous shell
    command asks for approval at every level, including level 5.
    The dangerous-command check runs before the level 5 rule on purpose.
    """
    level = config.level
    params = parameters or {}

    if level == 1:
        return True
    if level == 2:
        return True
    if tool_name in config.require_approval_tools:
        return True
    if tool_name in config.auto_approve_tools:
        return False

    if tool_name in COMMAND_TOOLS:
        command = params.get("command")
        if isinstance(command, str) and is_dangerous_command(command, config.dangerous_patterns):
            return True

    if level == 5:
        return False
    if level == 3:
        return tool_name not in LEVEL3_SAFE_TOOLS
    if level == 4:
        return False
    return True


def describe_level(level: int) -> str:
    return LEVEL_DESCRIPTIONS.get(level, "Unknown")


def level_warning(level: int) -> str | None:
    """Warning to keep visible while full autonomy is on."""
    if level == MAX_LEVEL:
        return "Full autonomy is enabled: every tool call runs without approval."
    return None


def recommend_level(context_size: int, parameters_billions: float | None = None) -> tuple[int, str]:
    """Suggest an autonomy level from model size and context window.

    Level 5 is never recommended; it has to be chosen explicitly.
    """
    small = parameters_billions is not None and parameters_billions < 3
    medium = parameters_billions is not None and parameters_billions < 7

    if small or context_size < 8192:
        return 2, "Small model - safer with manual approval"
    if medium or context_size < 32768:
        return 3, "Medium model - balanced autonomy"
    return 4, "Large model - high autonomy with safety checks"


class AutonomyConfigStore:
    """YAML-backed key-value store for the autonomy record."""

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"expected a mapping, got {type(data).__name__}")
        return data

    def get(self) -> AutonomyConfig:
        """Return saved values merged over the defaults."""
        try:
            saved = self._read()
            return AutonomyConfig(**{**AutonomyConfig().model_dump(), **saved})
        except (OSError, yaml.YAMLError, ValueError, ValidationError) as e:
            log.error("Failed to load autonomy config; using defaults", path=str(self.path), error=str(e))
            return AutonomyConfig()

    def set(self, config: AutonomyConfig) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(f"Could not save autonomy config to {self.path}: {e}") from e
        log.info("Autonomy config saved", path=str(self.path), level=config.level)

    def update(self, **changes: Any) -> AutonomyConfig:
        """Merge ``changes`` into the stored record and save it."""
        try:
            updated = AutonomyConfig(**{**self.get().model_dump(), **changes})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid autonomy config: {e}") from e
        self.set(updated)
        return updated
