"""Planning tool backed by the planning agent."""

from typing import Any

from corex_agent.llm import LLMProvider, get_provider
from corex_agent.logging import get_logger
from corex_agent.planning import PlanningAgent, PlanningContext
from corex_agent.tools.registry import Tool, ToolResult

log = get_logger(__name__)


class PlanTaskTool(Tool):
    """Break a task into intent, target files and steps."""

    name = "plan_task"
    description = "Create a detailed plan for a complex task. Break it down into steps."
    timeout_seconds = 120.0
    parameters = {
        "type": "object",
        "properties": {
            "task": {
                "type": "string",
                "description": "The task to plan (e.g., 'Add dark mode to the app')",
            },
            "context": {
                "type": "string",
                "description": "Additional context about the project",
            },
        },
        "required": ["task"],
    }

    def __init__(self, provider: LLMProvider | None = None):
        self._provider = provider

    async def execute(self, task: str, context: str = "", **kwargs: Any) -> ToolResult:
        agent = PlanningAgent(self._provider or get_provider())
        request = f"{task}\n\n{context}".strip() if context else task
        try:
            plan = await agent.create_plan(PlanningContext(user_input=request))
        except Exception as e:
            log.error("Planning tool failed", task=task, error=str(e))
            return ToolResult(success=False, error=str(e))
        return ToolResult(
            success=True,
            data={**plan.model_dump(), "valid": agent.validate_plan(plan)},
        )
