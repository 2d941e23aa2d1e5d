from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

import corex_agent.main as main_module
from corex_agent.exceptions import BackendTimeoutError, NoActiveModelError
from corex_agent.llm import LLMProvider, LLMResponse
from corex_agent.orchestrator import Orchestrator
from corex_agent.tools import ToolRegistry

runner = CliRunner()


class _Provider(LLMProvider):
    def __init__(self, reply):
        self.reply = reply

    async def complete(self, messages, tools=None, max_tokens=None, model=None):
        if isinstance(self.reply, Exception):
            raise self.reply
        return LLMResponse(content=self.reply)


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setattr(main_module, "configure_logging", lambda *args, **kwargs: None)
    path = tmp_path / "corex.yaml"
    path.write_text(
        yaml.safe_dump({
            "workspace": {"path": str(tmp_path)},
            "autonomy": {"store_path": str(tmp_path / "autonomy.yaml")},
            "retrieval": {"enabled": False},
        }),
        encoding="utf-8",
    )
    return path


def test_version():
    result = runner.invoke(main_module.app, ["version"])

    assert result.exit_code == 0
    assert "Corex v0.1.0" in result.output


def test_autonomy_set_persists_level(config_file: Path, tmp_path: Path):
    result = runner.invoke(main_module.app, ["autonomy", "set", "4", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "Autonomy set to 4" in result.output
    saved = yaml.safe_load((tmp_path / "autonomy.yaml").read_text(encoding="utf-8"))
    assert saved["level"] == 4


def test_autonomy_set_five_shows_warning(config_file: Path):
    result = runner.invoke(main_module.app, ["autonomy", "set", "5", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "Full autonomy" in result.output


def test_autonomy_set_rejects_out_of_range(config_file: Path):
    result = runner.invoke(main_module.app, ["autonomy", "set", "9", "-c", str(config_file)])

    assert result.exit_code != 0


def test_autonomy_show_defaults(config_file: Path):
    result = runner.invoke(main_module.app, ["autonomy", "show", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "Balanced" in result.output


def test_autonomy_recommend():
    result = runner.invoke(main_module.app, ["autonomy", "recommend", "--context", "4096"])

    assert result.exit_code == 0
    assert "Recommended level 2" in result.output


def test_ask_prints_answer(config_file: Path, tmp_path: Path, monkeypatch):
    monkeypatch.setattr(
        main_module,
        "_build_orchestrator",
        lambda: Orchestrator(provider=_Provider("All tests pass."), registry=ToolRegistry(tmp_path)),
    )

    result = runner.invoke(main_module.app, ["ask", "run the tests", "-c", str(config_file)])

    assert result.exit_code == 0
    assert "All tests pass." in result.output


def test_ask_reports_backend_error(config_file: Path, tmp_path: Path, monkeypatch):
    monkeypatch.setattr(
        main_module,
        "_build_orchestrator",
        lambda: Orchestrator(provider=_Provider(NoActiveModelError()), registry=ToolRegistry(tmp_path)),
    )

    result = runner.invoke(main_module.app, ["ask", "hello", "-c", str(config_file)])

    assert result.exit_code == 1
    assert "No active model" in result.output


def test_describe_backend_error_messages():
    assert "300s" in main_module._describe_backend_error(BackendTimeoutError(300))
    assert "No active model" in main_module._describe_backend_error(NoActiveModelError())


def test_cli_orchestrator_waits_for_terminal_approval(monkeypatch):
    import corex_agent.orchestrator as orchestrator_module

    monkeypatch.setattr(orchestrator_module, "get_provider", lambda: _Provider("ok"))

    orchestrator = main_module._build_orchestrator()

    assert orchestrator.approval_timeout == 0
    assert orchestrator.approval_callback is main_module._confirm_tool
