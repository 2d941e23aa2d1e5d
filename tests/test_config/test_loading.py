from pathlib import Path

import corex_agent.config as config_module
from corex_agent.config import Config


def test_load_prefers_local_config_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  provider: ollama\n  model: llama3.2\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "corex.yaml"
    local_cfg.write_text(
        (
            "model:\n"
            "  provider: openai_compatible\n"
            "  model: qwen2.5-coder-7b\n"
            "context:\n"
            "  output_mode: brief\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.model.provider == "openai_compatible"
    assert cfg.model.model == "qwen2.5-coder-7b"
    assert cfg.context.max_output_tokens == 2048


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("model:\n  provider: ollama\n  model: llama3.2\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.model.provider == "ollama"
    assert cfg.model.model == "llama3.2"


def test_load_explicit_path(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    explicit = tmp_path / "custom.yaml"
    explicit.write_text("orchestration:\n  max_iterations: 3\n", encoding="utf-8")

    cfg = Config.load(explicit)

    assert cfg.orchestration.max_iterations == 3
    assert cfg.orchestration.model_timeout == 300.0


def test_defaults_match_documented_limits(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    cfg = Config()

    assert cfg.context.max_context_tokens == 32768
    assert cfg.context.max_output_tokens == 8192
    assert cfg.context.history_ratio == 0.4
    assert cfg.orchestration.max_iterations == 5
    assert cfg.orchestration.approval_timeout == 120.0
    assert "Maximum tool call limit reached" in cfg.orchestration.bound_warning


def test_env_var_overrides_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "corex.yaml").write_text("model:\n  model: yaml-model\n", encoding="utf-8")
    monkeypatch.setenv("COREX_MODEL__MODEL", "env-model")

    cfg = Config.load()

    assert cfg.model.model == "env-model"


def test_dotenv_overrides_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "corex.yaml").write_text("context:\n  max_context_tokens: 4096\n", encoding="utf-8")
    (tmp_path / ".env").write_text("COREX_CONTEXT__MAX_CONTEXT_TOKENS=8192\n", encoding="utf-8")

    cfg = Config.load()

    assert cfg.context.max_context_tokens == 8192


def test_resolved_workspace_path_anchors_relative_to_cwd(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    cfg = Config()
    cfg.workspace.path = "./project"

    assert cfg.resolved_workspace_path() == (tmp_path / "project").resolve()


def test_save_round_trip(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    cfg = Config()
    cfg.retrieval.top_k = 7
    target = tmp_path / "saved" / "config.yaml"

    cfg.save(target)

    assert Config.load(target).retrieval.top_k == 7
