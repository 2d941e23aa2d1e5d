from pathlib import Path

import pytest

from corex_agent.retrieval import (
    RetrievalAugmentor,
    RetrievalIndex,
    RetrievedSnippet,
    WorkspaceKeywordIndex,
    query_terms,
)


class _FixedIndex(RetrievalIndex):
    def __init__(self, snippets: list[RetrievedSnippet]):
        self.snippets = snippets
        self.queries: list[tuple[str, int]] = []

    async def search(self, query: str, k: int) -> list[RetrievedSnippet]:
        self.queries.append((query, k))
        return self.snippets


class _BrokenIndex(RetrievalIndex):
    async def search(self, query: str, k: int) -> list[RetrievedSnippet]:
        raise ConnectionError("vector store offline")


def test_query_terms_drop_stopwords_and_duplicates():
    assert query_terms("How does the Config loader load the config?") == ["config", "loader", "load"]
    assert query_terms("is it ok") == ["is", "it", "ok"]


@pytest.mark.asyncio
async def test_augment_limits_to_k():
    snippets = [RetrievedSnippet(path=f"f{i}.py", content="x") for i in range(6)]
    index = _FixedIndex(snippets)

    result = await RetrievalAugmentor(index).augment("find things", k=3)

    assert [s.path for s in result] == ["f0.py", "f1.py", "f2.py"]
    assert index.queries == [("find things", 3)]


@pytest.mark.asyncio
async def test_augment_swallows_index_failures():
    assert await RetrievalAugmentor(_BrokenIndex()).augment("anything", k=4) == []


@pytest.mark.asyncio
async def test_augment_without_index_or_query():
    assert await RetrievalAugmentor(None).augment("anything") == []
    assert await RetrievalAugmentor(_FixedIndex([RetrievedSnippet("a", "b")])).augment("   ") == []


def test_format_context_truncates_and_labels_files():
    augmentor = RetrievalAugmentor(None, max_snippet_chars=5)

    text = augmentor.format_context([
        RetrievedSnippet(path="src/a.py", content="abcdefghij"),
        RetrievedSnippet(path="b.md", content="ok"),
    ])

    assert "--- FILE: src/a.py ---" in text
    assert "abcde\n... [truncated]" in text
    assert "fghij" not in text
    assert "--- FILE: b.md ---\n```\nok\n```" in text
    assert text.index("src/a.py") < text.index("b.md")


def test_format_context_empty():
    assert RetrievalAugmentor(None).format_context([]) == ""


@pytest.mark.asyncio
async def test_workspace_index_ranks_by_term_overlap(tmp_path: Path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "autonomy.py").write_text("def requires_approval(level): ...\n", encoding="utf-8")
    (tmp_path / "src" / "context.py").write_text("approval appears once here\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("nothing relevant\n", encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "autonomy.js").write_text("autonomy approval\n", encoding="utf-8")

    index = WorkspaceKeywordIndex(tmp_path)
    hits = await index.search("autonomy approval", k=5)

    assert [h.path for h in hits] == ["src/autonomy.py", "src/context.py"]
    assert hits[0].score > hits[1].score


@pytest.mark.asyncio
async def test_workspace_index_missing_root_is_isolated_by_augmentor(tmp_path: Path):
    index = WorkspaceKeywordIndex(tmp_path / "does-not-exist")

    with pytest.raises(FileNotFoundError):
        await index.search("anything useful", k=2)
    assert await RetrievalAugmentor(index).augment("anything useful", k=2) == []
