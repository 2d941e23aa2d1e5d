"""Retrieval augmentation: fetch relevant workspace snippets for a request.

Retrieval is best-effort. Index failures are logged and the turn proceeds
without augmentation. Results are only ever rendered into the per-request
prompt, never stored in history.
"""

from __future__ import annotations

import asyncio
import os
import re
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from pathlib import Path

from corex_agent.instructions import InstructionLoader
from corex_agent.logging import get_logger

log = get_logger(__name__)

_DEFAULT_TEXT_EXTENSIONS = {
    ".txt", ".md", ".rst", ".py", ".js", ".ts", ".tsx", ".jsx", ".json",
    ".yaml", ".yml", ".toml", ".ini", ".cfg", ".sql", ".sh", ".html", ".css",
    ".go", ".rs", ".java", ".c", ".h", ".cpp",
}
_DEFAULT_EXCLUDE_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".corex"}

_STOPWORDS = {
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in", "is",
    "it", "of", "on", "or", "that", "the", "this", "to", "was", "were", "with",
    "how", "what", "does", "can", "you", "please",
}


@dataclass
class RetrievedSnippet:
    """One retrieval hit."""

    path: str
    content: str
    score: float = 0.0


def tokenize(text: str) -> list[str]:
    return re.findall(r"\w+", (text or "").lower())


def query_terms(query: str) -> list[str]:
    raw = tokenize(query)
    terms = [t for t in raw if len(t) >= 3 and t not in _STOPWORDS]
    if not terms:
        terms = [t for t in raw if len(t) >= 2]
    return list(dict.fromkeys(terms))


class RetrievalIndex(ABC):
    """Semantic or keyword index over the project."""

    @abstractmethod
    async def search(self, query: str, k: int) -> list[RetrievedSnippet]:
        pass


class WorkspaceKeywordIndex(RetrievalIndex):
    """Rank workspace text files by query-term overlap.

    Scans on every search; meant for small to medium projects without a
    dedicated vector index.
    """

    def __init__(
        self,
        root: Path | str,
        max_file_bytes: int = 200_000,
        max_files: int = 2000,
        include_extensions: set[str] | None = None,
        exclude_dirs: set[str] | None = None,
    ):
        self.root = Path(root).expanduser().resolve()
        self.max_file_bytes = max_file_bytes
        self.max_files = max_files
        self.include_extensions = include_extensions or _DEFAULT_TEXT_EXTENSIONS
        self.exclude_dirs = exclude_dirs or _DEFAULT_EXCLUDE_DIRS

    def _iter_files(self):
        if not self.root.is_dir():
            raise FileNotFoundError(f"Retrieval root not found: {self.root}")
        seen = 0
        for current, dirs, files in os.walk(self.root):
            dirs[:] = sorted(d for d in dirs if d.lower() not in self.exclude_dirs)
            for filename in sorted(files):
                path = Path(current) / filename
                if path.suffix.lower() not in self.include_extensions:
                    continue
                try:
                    size = path.stat().st_size
                except OSError:
                    continue
                if size <= 0 or size > self.max_file_bytes:
                    continue
                seen += 1
                if seen > self.max_files:
                    return
                yield path

    def _score(self, path: Path, text: str, terms: list[str]) -> float:
        counts = Counter(tokenize(text))
        rel_name = path.relative_to(self.root).as_posix().lower()
        score = 0.0
        for term in terms:
            hits = counts.get(term, 0)
            if hits:
                score += 1.0 + min(hits, 10) / 10.0
            if term in rel_name:
                score += 2.0
        return score

    def _search_sync(self, query: str, k: int) -> list[RetrievedSnippet]:
        terms = query_terms(query)
        if not terms:
            return []
        hits: list[RetrievedSnippet] = []
        for path in self._iter_files():
            try:
                text = path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                continue
            score = self._score(path, text, terms)
            if score > 0:
                hits.append(
                    RetrievedSnippet(
                        path=path.relative_to(self.root).as_posix(),
                        content=text,
                        score=score,
                    )
                )
        hits.sort(key=lambda hit: (-hit.score, hit.path))
        return hits[:k]

    async def search(self, query: str, k: int) -> list[RetrievedSnippet]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._search_sync, query, k)


class RetrievalAugmentor:
    """Wrap an index with failure isolation and prompt formatting."""

    def __init__(
        self,
        index: RetrievalIndex | None,
        max_snippet_chars: int = 1500,
        loader: InstructionLoader | None = None,
    ):
        self.index = index
        self.max_snippet_chars = max_snippet_chars
        self.loader = loader or InstructionLoader()

    async def augment(self, query: str, k: int = 4) -> list[RetrievedSnippet]:
        """Return up to ``k`` snippets, or ``[]`` if the index is unavailable."""
        if self.index is None or not (query or "").strip() or k <= 0:
            return []
        try:
            snippets = await self.index.search(query, k)
        except Exception as e:
            log.warning("Retrieval skipped", error=str(e))
            return []
        snippets = list(snippets or [])[:k]
        if snippets:
            log.debug("Retrieved context", count=len(snippets), paths=[s.path for s in snippets])
        return snippets

    def format_context(self, snippets: list[RetrievedSnippet]) -> str:
        """Render snippets as the content of one system message."""
        if not snippets:
            return ""
        blocks = []
        for snippet in snippets:
            content = snippet.content
            if len(content) > self.max_snippet_chars:
                content = content[:self.max_snippet_chars] + "\n... [truncated]"
            blocks.append(f"--- FILE: {snippet.path} ---\n```\n{content}\n```")
        return self.loader.render("retrieval_context.md", snippets="\n\n".join(blocks))
