import sys
from pathlib import Path

import pytest

from corex_agent.tools import RunTerminalTool
from corex_agent.tools.terminal import is_blocked_shell_command

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")


def test_blocked_patterns_match_base_command_or_phrase():
    blocked = ["mkfs", "rm -rf /"]

    assert is_blocked_shell_command("sudo mkfs.ext4 /dev/sda1", blocked)[0] is True
    assert is_blocked_shell_command("echo hi && rm -rf /", blocked)[0] is True
    assert is_blocked_shell_command("ls -la", blocked) == (False, "")


def test_empty_command_is_blocked():
    blocked, reason = is_blocked_shell_command("   ", [])

    assert blocked is True
    assert reason == "Command is empty"


@pytest.mark.asyncio
async def test_run_terminal_runs_in_workspace_root(tmp_path: Path):
    (tmp_path / "marker.txt").write_text("x", encoding="utf-8")

    result = await RunTerminalTool().execute(command="ls", _root=tmp_path)

    assert result.success is True
    assert "marker.txt" in result.data


@pytest.mark.asyncio
async def test_run_terminal_nonzero_exit_is_failure(tmp_path: Path):
    result = await RunTerminalTool().execute(command="echo oops >&2; exit 3", _root=tmp_path)

    assert result.success is False
    assert "code 3" in result.error
    assert "oops" in result.error


@pytest.mark.asyncio
async def test_run_terminal_refuses_blocked_command(tmp_path: Path):
    result = await RunTerminalTool().execute(command="rm -rf /", _root=tmp_path)

    assert result.success is False
    assert result.error.startswith("Command blocked")
