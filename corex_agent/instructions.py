"""Prompt templates used when talking to the model.

Every prompt the engine sends lives as a Markdown file. Lookup walks a short
list of directories and takes the first hit: ``~/.corex/instructions`` for
per-user tweaks, then ``$COREX_INSTRUCTIONS_DIR`` when set, then the copies
shipped in ``corex_agent/instructions``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

_PACKAGED = Path(__file__).resolve().parent / "instructions"
_USER_OVERRIDES = Path("~/.corex/instructions")

# Doubled braces are literal, as in str.format.
_PLACEHOLDER = re.compile(r"\{\{|\}\}|\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _default_search_path() -> list[Path]:
    dirs = [_USER_OVERRIDES.expanduser()]
    env_dir = os.getenv("COREX_INSTRUCTIONS_DIR")
    dirs.append(Path(env_dir).expanduser() if env_dir else _PACKAGED)
    return dirs


class InstructionLoader:
    """Find, cache and fill prompt templates."""

    def __init__(self, base_dir: Path | str | None = None, personal_dir: Path | str | None = None):
        search_path = _default_search_path()
        if personal_dir is not None:
            search_path[0] = Path(personal_dir).expanduser()
        if base_dir is not None:
            search_path[-1] = Path(base_dir).expanduser()
        self.search_path = [directory.resolve() for directory in search_path]
        self._templates: dict[str, str] = {}

    def locate(self, name: str) -> Path:
        for directory in self.search_path:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        searched = ", ".join(str(directory) for directory in self.search_path)
        raise FileNotFoundError(f"No instruction template named {name!r} (searched: {searched})")

    def load(self, name: str) -> str:
        if name not in self._templates:
            self._templates[name] = self.locate(name).read_text(encoding="utf-8").strip()
        return self._templates[name]

    def render(self, name: str, **variables: object) -> str:
        """Fill ``{placeholder}`` slots; unknown names are left as written."""

        def substitute(match: re.Match[str]) -> str:
            key = match.group(1)
            if key is None:
                return match.group(0)[0]
            return str(variables[key]) if key in variables else match.group(0)

        return _PLACEHOLDER.sub(substitute, self.load(name))
