from pathlib import Path

import pytest

from corex_agent.config import Config, get_config, set_config


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path):
    """Fresh config per test: workspace and autonomy record under tmp_path."""
    old_cfg = get_config().model_copy(deep=True)
    cfg = Config()
    cfg.workspace.path = str(tmp_path)
    cfg.autonomy.store_path = str(tmp_path / "autonomy.yaml")
    cfg.retrieval.enabled = False
    set_config(cfg)
    try:
        yield cfg
    finally:
        set_config(old_cfg)
