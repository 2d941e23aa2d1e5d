from pathlib import Path

import pytest
import yaml

from corex_agent.autonomy import AutonomyConfig, AutonomyConfigStore
from corex_agent.exceptions import ConfigurationError


def test_missing_file_returns_defaults(tmp_path: Path):
    store = AutonomyConfigStore(tmp_path / "missing.yaml")

    record = store.get()

    assert record == AutonomyConfig()
    assert record.level == 3


def test_saved_values_merge_over_defaults(tmp_path: Path):
    path = tmp_path / "autonomy.yaml"
    path.write_text(yaml.safe_dump({"level": 4}))

    record = AutonomyConfigStore(path).get()

    assert record.level == 4
    assert "read_file" in record.auto_approve_tools


def test_corrupt_record_falls_back_to_defaults(tmp_path: Path):
    path = tmp_path / "autonomy.yaml"
    path.write_text("level: [unclosed")

    assert AutonomyConfigStore(path).get() == AutonomyConfig()


def test_invalid_level_on_disk_falls_back_to_defaults(tmp_path: Path):
    path = tmp_path / "autonomy.yaml"
    path.write_text(yaml.safe_dump({"level": 42}))

    assert AutonomyConfigStore(path).get().level == 3


def test_update_persists_and_round_trips(tmp_path: Path):
    path = tmp_path / "nested" / "autonomy.yaml"
    store = AutonomyConfigStore(path)

    updated = store.update(level=5, require_approval_tools=["write_file"])

    assert updated.level == 5
    assert path.exists()
    reloaded = AutonomyConfigStore(path).get()
    assert reloaded.level == 5
    assert reloaded.require_approval_tools == ["write_file"]


def test_update_rejects_invalid_level(tmp_path: Path):
    store = AutonomyConfigStore(tmp_path / "autonomy.yaml")

    with pytest.raises(ConfigurationError):
        store.update(level=0)
    assert store.get().level == 3
