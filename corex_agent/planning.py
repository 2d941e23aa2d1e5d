"""Advisory planning pass: turn a request into intent, target files and steps.

The plan is metadata for the caller and the ``plan_task`` tool. The
orchestration loop never depends on it.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from corex_agent.exceptions import BackendError
from corex_agent.instructions import InstructionLoader
from corex_agent.llm import LLMProvider, Message
from corex_agent.logging import get_logger

log = get_logger(__name__)

Intent = Literal["edit_file", "create_file", "explain", "refactor", "debug", "chat"]

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
_FILE_MENTION_RE = re.compile(r"[\w./-]+\.(?:ts|tsx|js|jsx|py|rs|go|java|cpp|c|h)\b", re.IGNORECASE)
_TS_IMPORT_RE = re.compile(r"import.*from\s+['\"](.+)['\"]")
_PY_IMPORT_RE = re.compile(r"^\s*(?:from|import)\s+([\w.]+)", re.MULTILINE)

_INTENT_KEYWORDS: list[tuple[Intent, tuple[str, ...]]] = [
    ("edit_file", ("edit", "change", "modify", "update")),
    ("create_file", ("create", "new ", "add a", "generate")),
    ("explain", ("explain", "what is", "how does", "why does")),
    ("refactor", ("refactor", "optimize", "clean up", "improve")),
    ("debug", ("bug", "debug", "fix", "error", "crash")),
]

MAX_CONTEXT_FILES = 10
MIN_CONFIDENCE = 0.3


class Plan(BaseModel):
    """Execution plan for one user request."""

    intent: Intent = "chat"
    target_files: list[str] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
    context_needed: list[str] = Field(default_factory=list)
    reasoning: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


@dataclass
class PlanningContext:
    """What the planner knows about the editor state."""

    user_input: str
    current_file: str | None = None
    open_files: list[str] = field(default_factory=list)
    recent_files: list[str] = field(default_factory=list)
    project_file_count: int = 0


def detect_intent(text: str) -> Intent:
    lowered = (text or "").lower()
    for intent, keywords in _INTENT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return intent
    return "chat"


def extract_imports(content: str) -> list[str]:
    """Module paths imported by a TypeScript/JavaScript or Python source."""
    imports = _TS_IMPORT_RE.findall(content or "")
    imports.extend(_PY_IMPORT_RE.findall(content or ""))
    return list(dict.fromkeys(imports))


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(item for item in items if item))


class PlanningAgent:
    """Ask the model for a JSON plan, falling back to keyword heuristics."""

    def __init__(self, provider: LLMProvider, loader: InstructionLoader | None = None):
        self.provider = provider
        self.loader = loader or InstructionLoader()

    def build_prompt(self, context: PlanningContext) -> str:
        return self.loader.render(
            "planning_prompt.md",
            user_input=context.user_input,
            current_file=context.current_file or "none",
            open_files=", ".join(context.open_files) or "none",
            recent_files=", ".join(context.recent_files[:5]) or "none",
            project_file_count=context.project_file_count,
        )

    async def create_plan(self, context: PlanningContext) -> Plan:
        """Create a plan. Backend failures produce a low-confidence fallback plan."""
        prompt = self.build_prompt(context)
        try:
            response = await self.provider.complete([Message(role="user", content=prompt)])
        except BackendError as e:
            log.warning("Planning failed; using fallback plan", error=str(e))
            return self.fallback_plan(context)

        plan = self.parse_plan(response.content, context)
        log.info("Plan created", intent=plan.intent, steps=len(plan.steps), confidence=plan.confidence)
        return plan

    def parse_plan(self, text: str, context: PlanningContext) -> Plan:
        match = _JSON_BLOCK_RE.search(text or "")
        if match:
            try:
                data = json.loads(match.group(0))
                if isinstance(data, dict):
                    return Plan(
                        intent=data.get("intent") or "chat",
                        target_files=data.get("target_files") or data.get("targetFiles") or [],
                        steps=data.get("steps") or [],
                        context_needed=data.get("context_needed") or data.get("contextNeeded") or [],
                        reasoning=data.get("reasoning") or "",
                        confidence=data.get("confidence") or 0.5,
                    )
            except (json.JSONDecodeError, ValidationError) as e:
                log.warning("Failed to parse plan JSON", error=str(e))
        return self.heuristic_plan(context)

    def heuristic_plan(self, context: PlanningContext) -> Plan:
        """Plan inferred from keywords and file names in the request."""
        targets = [context.current_file] if context.current_file else []
        targets.extend(_FILE_MENTION_RE.findall(context.user_input or ""))
        return Plan(
            intent=detect_intent(context.user_input),
            target_files=_unique(targets),
            steps=["Analyze request", "Execute action", "Verify result"],
            context_needed=context.open_files[:3],
            reasoning="Inferred from user input keywords",
            confidence=0.6,
        )

    def fallback_plan(self, context: PlanningContext) -> Plan:
        return Plan(
            intent="chat",
            target_files=[context.current_file] if context.current_file else [],
            steps=["Process user request", "Generate response"],
            context_needed=context.open_files[:3],
            reasoning="Fallback plan due to planning error",
            confidence=MIN_CONFIDENCE,
        )

    @staticmethod
    def validate_plan(plan: Plan) -> bool:
        if plan.confidence < MIN_CONFIDENCE:
            log.warning("Low confidence plan", confidence=plan.confidence)
            return False
        if plan.intent == "edit_file" and not plan.target_files:
            log.warning("Edit intent but no target files")
            return False
        return True

    @staticmethod
    def enhance_plan(plan: Plan, project_files: dict[str, str]) -> Plan:
        """Add imports of the target files to ``context_needed``.

        ``project_files`` maps path to content.
        """
        context_needed = list(plan.context_needed)
        for target in plan.target_files:
            for path, content in project_files.items():
                if target in path:
                    context_needed.extend(extract_imports(content))
                    break
        return plan.model_copy(update={"context_needed": _unique(context_needed)[:MAX_CONTEXT_FILES]})
