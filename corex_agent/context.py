"""Conversation history, token accounting, pruning and summarization.

``ContextStore`` holds the persisted history of one session. Nothing
ephemeral is ever written into it: the rolling summary, retrieved snippets
and continuation instructions are only spliced into the ``RenderedPrompt``
built fresh for every model call.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Literal

from corex_agent.llm import Message
from corex_agent.logging import get_logger

log = get_logger(__name__)

Role = Literal["system", "user", "assistant"]

SUMMARY_HEADER = "Previous conversation summary:"
SUMMARY_ENTRY_CHAR_LIMIT = 500
SUMMARY_MAX_SENTENCES = 5

Summarizer = Callable[[str], Awaitable[str]]


def estimate_tokens(text: str) -> int:
    """Rough token estimate: word count x 1.3, rounded up."""
    words = len((text or "").split())
    return math.ceil(words * 13 / 10)


def limit_sentences(text: str, max_sentences: int = SUMMARY_MAX_SENTENCES) -> str:
    """Keep at most ``max_sentences`` sentences of ``text``."""
    cleaned = " ".join((text or "").split())
    if not cleaned:
        return ""
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+", cleaned) if s.strip()]
    if len(sentences) <= max_sentences:
        return cleaned
    return " ".join(sentences[:max_sentences])


@dataclass
class HistoryEntry:
    """One persisted conversation entry. ``token_count`` is computed once."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    token_count: int = -1

    def __post_init__(self) -> None:
        if self.token_count < 0:
            self.token_count = estimate_tokens(self.content)


@dataclass
class RenderedPrompt:
    """Derived per-request view of the history. Never stored."""

    messages: list[Message]
    token_count: int = 0
    has_summary: bool = False
    has_retrieval: bool = False
    # Pinned entries that were over budget and spliced back in.
    restored: int = 0


@dataclass
class ContextSnapshot:
    entries: list[HistoryEntry]
    summary: str | None
    messages_since_last_summary: int


class ContextStore:
    """Ordered conversation history for a single session."""

    def __init__(
        self,
        max_context_tokens: int = 32768,
        max_output_tokens: int = 8192,
        summary_interval: int = 10,
        summary_window: int = 10,
    ):
        self.entries: list[HistoryEntry] = []
        self.summary: str | None = None
        self.messages_since_last_summary = 0
        self.max_context_tokens = max_context_tokens
        self.max_output_tokens = max_output_tokens
        self.summary_interval = summary_interval
        self.summary_window = summary_window

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def has_system_prompt(self) -> bool:
        return bool(self.entries) and self.entries[0].role == "system"

    def set_limits(self, max_context_tokens: int, max_output_tokens: int) -> None:
        self.max_context_tokens = max_context_tokens
        self.max_output_tokens = max_output_tokens

    def history_budget(self, ratio: float = 0.4) -> int:
        return math.floor(self.max_context_tokens * ratio)

    def ensure_system_prompt(self, content: str) -> HistoryEntry:
        """Create the system entry at index 0 if history has none yet."""
        if self.has_system_prompt:
            return self.entries[0]
        entry = HistoryEntry(role="system", content=content)
        self.entries.insert(0, entry)
        return entry

    def refresh_system_prompt(self, content: str) -> HistoryEntry:
        """Like ``ensure_system_prompt`` but replaces entry 0 if its text changed."""
        if self.has_system_prompt and self.entries[0].content != content:
            self.entries[0] = HistoryEntry(role="system", content=content)
            return self.entries[0]
        return self.ensure_system_prompt(content)

    def append(self, role: Role, content: str) -> HistoryEntry:
        """Append an entry and advance the summarization counter."""
        if role == "system" and not self.entries:
            return self.ensure_system_prompt(content)
        entry = HistoryEntry(role=role, content=content)
        self.entries.append(entry)
        self.messages_since_last_summary += 1
        return entry

    def total_tokens(self) -> int:
        return sum(entry.token_count for entry in self.entries)

    def prune_to_fit(self, max_tokens: int) -> int:
        """Drop the oldest non-system entries until history fits ``max_tokens``.

        Entry 0 is kept unconditionally and its tokens count toward the budget.
        The newest entries are kept as one contiguous suffix. Returns the
        number of dropped entries.
        """
        if len(self.entries) <= 1:
            return 0

        head = self.entries[:1] if self.has_system_prompt else []
        tail = self.entries[len(head):]
        used = sum(entry.token_count for entry in head)

        kept_reversed: list[HistoryEntry] = []
        for entry in reversed(tail):
            if used + entry.token_count > max_tokens:
                break
            kept_reversed.append(entry)
            used += entry.token_count

        dropped = len(tail) - len(kept_reversed)
        if dropped:
            self.entries = head + list(reversed(kept_reversed))
            log.info(
                "History pruned",
                dropped=dropped,
                kept=len(self.entries),
                tokens=used,
                budget=max_tokens,
            )
        return dropped

    def _summary_transcript(self) -> str:
        recent = [entry for entry in self.entries if entry.role != "system"]
        recent = recent[-self.summary_window:]
        lines = []
        for entry in recent:
            speaker = "User" if entry.role == "user" else "Assistant"
            lines.append(f"{speaker}: {entry.content[:SUMMARY_ENTRY_CHAR_LIMIT]}")
        return "\n\n".join(lines)

    async def maybe_summarize(self, summarizer: Summarizer) -> str:
        """Refresh the rolling summary once enough entries have accumulated.

        Returns the new digest, or ``""`` when no summary was produced. A failed
        summarization leaves ``summary`` and the counter untouched so the next
        turn tries again.
        """
        if self.messages_since_last_summary < self.summary_interval:
            return ""

        transcript = self._summary_transcript()
        if not transcript:
            return ""

        try:
            digest = limit_sentences(await summarizer(transcript))
        except Exception as e:
            log.warning("Summarization failed; keeping previous summary", error=str(e))
            return ""

        if not digest:
            log.warning("Summarization returned empty digest; keeping previous summary")
            return ""

        self.summary = digest
        self.messages_since_last_summary = 0
        log.info("Conversation summarized", chars=len(digest))
        return digest

    def render(
        self,
        retrieved: str | None = None,
        prompt: str | None = None,
        pinned: list[HistoryEntry] | None = None,
    ) -> RenderedPrompt:
        """Build the per-request message list.

        The summary goes right after the system prompt, retrieved context
        right before the latest user entry and ``prompt`` (a one-off
        instruction) at the very end.

        Entries in ``pinned`` always reach the model. Any of them that pruning
        removed from history are put back right after the system prompt, in
        the order given; pruning keeps a newest suffix, so that is where they
        sat chronologically. History itself is left as pruned.
        """
        messages = [Message(role=entry.role, content=entry.content) for entry in self.entries]
        token_count = self.total_tokens()

        present = {id(entry) for entry in self.entries}
        restored = [entry for entry in (pinned or []) if id(entry) not in present]
        if restored:
            head = 1 if self.has_system_prompt else 0
            messages[head:head] = [Message(role=entry.role, content=entry.content) for entry in restored]
            token_count += sum(entry.token_count for entry in restored)
            log.warning(
                "Pruned entries restored to prompt",
                count=len(restored),
                tokens=sum(entry.token_count for entry in restored),
            )

        has_summary = bool(self.summary)
        if has_summary:
            summary_text = f"{SUMMARY_HEADER}\n{self.summary}\n\n---\n"
            insert_at = 1 if self.has_system_prompt else 0
            messages.insert(insert_at, Message(role="system", content=summary_text))
            token_count += estimate_tokens(summary_text)

        has_retrieval = bool(retrieved)
        if has_retrieval:
            latest_user = next(
                (i for i in range(len(messages) - 1, -1, -1) if messages[i].role == "user"),
                len(messages),
            )
            messages.insert(latest_user, Message(role="system", content=retrieved))
            token_count += estimate_tokens(retrieved)

        if prompt:
            messages.append(Message(role="user", content=prompt))
            token_count += estimate_tokens(prompt)

        return RenderedPrompt(
            messages=messages,
            token_count=token_count,
            has_summary=has_summary,
            has_retrieval=has_retrieval,
            restored=len(restored),
        )

    def snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            entries=list(self.entries),
            summary=self.summary,
            messages_since_last_summary=self.messages_since_last_summary,
        )

    def restore(self, snapshot: ContextSnapshot) -> None:
        self.entries = list(snapshot.entries)
        self.summary = snapshot.summary
        self.messages_since_last_summary = snapshot.messages_since_last_summary

    def reset(self) -> None:
        """Clear history, summary and counter."""
        self.entries.clear()
        self.summary = None
        self.messages_since_last_summary = 0
