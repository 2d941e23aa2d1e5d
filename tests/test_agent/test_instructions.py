from pathlib import Path

import pytest

from corex_agent.instructions import InstructionLoader


def _loader(tmp_path: Path) -> InstructionLoader:
    base = tmp_path / "shipped"
    personal = tmp_path / "personal"
    base.mkdir()
    personal.mkdir()
    return InstructionLoader(base_dir=base, personal_dir=personal)


def test_personal_copy_overrides_shipped_template(tmp_path: Path):
    loader = _loader(tmp_path)
    (tmp_path / "shipped" / "greet.md").write_text("shipped", encoding="utf-8")
    (tmp_path / "personal" / "greet.md").write_text("mine", encoding="utf-8")

    assert loader.load("greet.md") == "mine"


def test_render_fills_known_and_keeps_unknown_placeholders(tmp_path: Path):
    loader = _loader(tmp_path)
    (tmp_path / "shipped" / "t.md").write_text(
        'Hi {name}, {missing}. PARAMS: {{"path": "x"}}\n', encoding="utf-8"
    )

    assert loader.render("t.md", name="Ada") == 'Hi Ada, {missing}. PARAMS: {"path": "x"}'


def test_missing_template_raises(tmp_path: Path):
    loader = _loader(tmp_path)

    with pytest.raises(FileNotFoundError, match="nope.md"):
        loader.load("nope.md")


def test_packaged_templates_are_found_by_default():
    loader = InstructionLoader(personal_dir="/nonexistent-corex-dir")

    assert "TOOL:" in loader.render("tools_protocol.md", manifest="")
