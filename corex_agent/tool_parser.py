"""Extract ``TOOL: name | PARAMS: {...}`` invocations from free-form model text.

This is the fallback for backends without a structured tool-call channel.
Parameter objects may be followed by unrelated text containing braces
(inline CSS, code samples), so each candidate is parsed by backtracking the
closing brace from right to left until a valid JSON object is found.
"""

from __future__ import annotations

import json
import re
from typing import Any

from corex_agent.llm import ToolCall
from corex_agent.logging import get_logger

log = get_logger(__name__)

TOOL_MARKER = "TOOL:"
_TOOL_MARKER_RE = re.compile(r"TOOL:\s*")
_PARAMS_MARKER_RE = re.compile(r"\|\s*PARAMS:\s*")
_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_NAME_STRIP = "`*_\"'"


def _clean_tool_name(raw: str) -> str:
    tokens = raw.strip().split()
    if not tokens:
        return ""
    return tokens[0].strip(_NAME_STRIP)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Find the JSON object starting at the first ``{``, backtracking the end.

    Tries ``text[first '{' : last '}']`` and, on failure, moves the right
    boundary to the previous ``}`` until parsing succeeds or no closing brace
    remains after the opening one.
    """
    candidate = _FENCE_RE.sub("", text or "")
    first = candidate.find("{")
    if first == -1:
        return None

    end = candidate.rfind("}")
    while end > first:
        try:
            parsed = json.loads(candidate[first:end + 1])
        except json.JSONDecodeError:
            end = candidate.rfind("}", first, end)
            continue
        if isinstance(parsed, dict):
            return parsed
        return None
    return None


def parse_tool_calls(text: str) -> list[ToolCall]:
    """Return tool calls found in ``text`` in source order."""
    if not text or TOOL_MARKER not in text:
        return []

    calls: list[ToolCall] = []
    sections = _TOOL_MARKER_RE.split(text)
    # sections[0] is the narrative before the first marker.
    for index, section in enumerate(sections[1:], start=1):
        parts = _PARAMS_MARKER_RE.split(section, maxsplit=1)
        if len(parts) < 2:
            log.warning("Tool call section without PARAMS marker", section=index, preview=section[:80])
            continue

        name = _clean_tool_name(parts[0])
        if not name:
            log.warning("Tool call section without tool name", section=index)
            continue

        parameters = extract_json_object(parts[1])
        if parameters is None:
            log.warning("Unparseable tool call parameters", tool=name, preview=parts[1][:120])
            continue

        calls.append(ToolCall(name=name, parameters=parameters, id=f"text_call_{len(calls)}"))

    if calls:
        log.debug("Parsed tool calls from text", count=len(calls), tools=[c.name for c in calls])
    return calls
