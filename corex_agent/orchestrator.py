"""Turn loop: user message -> model calls and tool executions -> final answer.

One ``Orchestrator`` owns one session. Its ``state`` is the single active-turn
slot; a second ``run_turn`` while a turn is in flight is rejected with
``SessionBusyError`` rather than queued.

Per turn:
  Preparing       snapshot autonomy config and limits, append the user
                  message, summarize, prune, retrieve.
  AwaitingModel   one backend call, bounded by ``model_timeout``.
  ParsingTools    structured tool calls first, text protocol as fallback.
  AwaitingApproval / Executing
                  each call in sequence through the autonomy gate.
The loop repeats until the model stops calling tools or ``max_iterations``
tool rounds have run. Recoverable problems become data for the next model
call; only backend failures reach the caller, and they roll history back to
where it was before the turn started.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from corex_agent.autonomy import (
    AutonomyConfig,
    AutonomyConfigStore,
    level_warning,
    requires_approval,
)
from corex_agent.config import Config, get_config
from corex_agent.context import ContextStore, RenderedPrompt, estimate_tokens
from corex_agent.exceptions import BackendTimeoutError, SessionBusyError
from corex_agent.instructions import InstructionLoader
from corex_agent.llm import LLMProvider, LLMResponse, Message, ToolCall, get_provider
from corex_agent.logging import get_logger
from corex_agent.retrieval import RetrievalAugmentor, WorkspaceKeywordIndex
from corex_agent.tool_parser import parse_tool_calls
from corex_agent.tools import ToolRegistry, ToolResult, register_default_tools

log = get_logger(__name__)

REJECTED_ERROR = "User rejected the tool execution."
APPROVAL_TIMEOUT_ERROR = "Approval timed out; tool execution was rejected."
NO_APPROVER_ERROR = "Approval required but no approval handler is available; tool execution was rejected."
DISABLED_ERROR = "Tool execution is disabled at autonomy level 1."

ApprovalCallback = Callable[[str, dict[str, Any]], "bool | Awaitable[bool]"]
ToolEventCallback = Callable[[str, str, "ToolResult | None"], None]
StatusCallback = Callable[["TurnState"], None]


class TurnState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    AWAITING_MODEL = "awaiting_model"
    PARSING_TOOLS = "parsing_tools"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING = "executing"


@dataclass
class ToolExecution:
    """One tool call and what came of it."""

    call: ToolCall
    result: ToolResult
    approval_required: bool = False
    executed: bool = False


@dataclass
class TurnResult:
    """Final answer of a turn plus an audit trail of its tool calls."""

    text: str
    iterations: int = 0
    executions: list[ToolExecution] = field(default_factory=list)
    bound_reached: bool = False
    model_calls: int = 0


def format_tool_results(executions: list[ToolExecution]) -> str:
    """Fold one iteration's results into a single user-role message."""
    blocks = [
        f"Tool Result ({item.call.name}):\n{item.result.render()}"
        for item in executions
    ]
    return "Tool results:\n\n" + "\n\n".join(blocks)


class Orchestrator:
    """Drive one session's turns against a model backend and tool registry."""

    def __init__(
        self,
        provider: LLMProvider | None = None,
        registry: ToolRegistry | None = None,
        autonomy_store: AutonomyConfigStore | None = None,
        retrieval: RetrievalAugmentor | None = None,
        context: ContextStore | None = None,
        loader: InstructionLoader | None = None,
        approval_callback: ApprovalCallback | None = None,
        tool_event_callback: ToolEventCallback | None = None,
        status_callback: StatusCallback | None = None,
        approval_timeout: float | None = None,
    ):
        cfg = get_config()
        self.provider = provider or get_provider()
        self.registry = (
            registry if registry is not None
            else register_default_tools(ToolRegistry(cfg.resolved_workspace_path()), provider=self.provider)
        )
        self.autonomy_store = autonomy_store or AutonomyConfigStore(cfg.autonomy.store_path)
        self.loader = loader or InstructionLoader()
        if retrieval is None and cfg.retrieval.enabled:
            retrieval = RetrievalAugmentor(
                WorkspaceKeywordIndex(
                    cfg.resolved_workspace_path(),
                    max_file_bytes=cfg.retrieval.max_file_bytes,
                ),
                max_snippet_chars=cfg.retrieval.max_snippet_chars,
                loader=self.loader,
            )
        self.retrieval = retrieval
        self.context = context if context is not None else ContextStore(
            max_context_tokens=cfg.context.max_context_tokens,
            max_output_tokens=cfg.context.max_output_tokens,
            summary_interval=cfg.context.summary_interval,
            summary_window=cfg.context.summary_window,
        )
        self.approval_callback = approval_callback
        self.tool_event_callback = tool_event_callback
        self.status_callback = status_callback
        # None defers to orchestration.approval_timeout; 0 waits indefinitely.
        self.approval_timeout = approval_timeout
        self._state = TurnState.IDLE

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state is not TurnState.IDLE

    def _set_state(self, state: TurnState) -> None:
        self._state = state
        if self.status_callback is not None:
            try:
                self.status_callback(state)
            except Exception as e:
                log.warning("Status callback failed", state=state.value, error=str(e))

    def _emit_tool_event(self, tool_name: str, status: str, result: ToolResult | None = None) -> None:
        if self.tool_event_callback is None:
            return
        try:
            self.tool_event_callback(tool_name, status, result)
        except Exception as e:
            log.warning("Tool event callback failed", tool=tool_name, status=status, error=str(e))

    def reset(self) -> None:
        """Clear history and summary. Not allowed while a turn is running."""
        if self.is_busy:
            raise SessionBusyError(self._state.value)
        self.context.reset()

    def build_system_prompt(self, autonomy: AutonomyConfig) -> str:
        cfg = get_config()
        parts = [self.loader.render("system_prompt.md", workspace=cfg.resolved_workspace_path())]
        if autonomy.level == 1:
            parts.append(self.loader.load("chat_only.md"))
        else:
            parts.append(self.loader.render("tools_protocol.md", manifest=self.registry.manifest()))
        return "\n\n".join(parts)

    async def _summarize(self, transcript: str) -> str:
        cfg = get_config()
        prompt = self.loader.render("summary_prompt.md", transcript=transcript)
        response = await asyncio.wait_for(
            self.provider.complete([Message(role="user", content=prompt)], max_tokens=512),
            timeout=cfg.orchestration.model_timeout,
        )
        return response.content.strip()

    async def run_turn(self, message: str, reset_history: bool = False) -> TurnResult:
        """Run one user turn to completion.

        Raises:
            SessionBusyError: another turn is in flight for this session
            BackendError: the model backend failed (history is rolled back)
        """
        if self.is_busy:
            raise SessionBusyError(self._state.value)
        self._set_state(TurnState.PREPARING)

        snapshot = self.context.snapshot()
        if reset_history:
            self.context.reset()
        try:
            return await self._run(message)
        except (Exception, asyncio.CancelledError) as e:
            self.context.restore(snapshot)
            log.error("Turn aborted; history rolled back", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            self._set_state(TurnState.IDLE)

    async def _run(self, message: str) -> TurnResult:
        cfg = get_config()
        autonomy = self.autonomy_store.get()
        self.context.set_limits(cfg.context.max_context_tokens, cfg.context.max_output_tokens)
        history_budget = self.context.history_budget(cfg.context.history_ratio)

        warning = level_warning(autonomy.level)
        if warning:
            log.warning(warning, level=autonomy.level)

        self.context.refresh_system_prompt(self.build_system_prompt(autonomy))
        user_entry = self.context.append("user", message)
        latest_entry = user_entry
        await self.context.maybe_summarize(self._summarize)
        self.context.prune_to_fit(history_budget)

        retrieved: str | None = None
        if self.retrieval is not None:
            snippets = await self.retrieval.augment(message, cfg.retrieval.top_k)
            retrieved = self.retrieval.format_context(snippets) or None

        continuation = self.loader.load("continue_prompt.md")
        result = TurnResult(text="")
        prompt: str | None = None

        while True:
            pinned = [user_entry] if latest_entry is user_entry else [user_entry, latest_entry]
            rendered = self.context.render(retrieved=retrieved, prompt=prompt, pinned=pinned)
            response = await self._call_model(rendered, autonomy, cfg)
            result.model_calls += 1

            self._set_state(TurnState.PARSING_TOOLS)
            calls = response.tool_calls or parse_tool_calls(response.content)
            if not calls:
                result.text = response.content
                break

            if result.iterations >= cfg.orchestration.max_iterations:
                log.warning(
                    "Tool iteration limit reached",
                    iterations=result.iterations,
                    pending_calls=len(calls),
                )
                result.text = response.content + cfg.orchestration.bound_warning
                result.bound_reached = True
                break

            result.iterations += 1
            log.info(
                "Tool calls detected",
                iteration=result.iterations,
                max_iterations=cfg.orchestration.max_iterations,
                tools=[call.name for call in calls],
            )
            executions = await self._run_tool_calls(calls, autonomy, cfg)
            result.executions.extend(executions)

            latest_entry = self.context.append("user", format_tool_results(executions))
            self.context.prune_to_fit(history_budget)
            prompt = continuation

        self.context.append("assistant", result.text)

        response_tokens = estimate_tokens(result.text)
        if response_tokens > self.context.max_output_tokens * 0.9:
            log.warning(
                "Response close to output limit",
                tokens=response_tokens,
                limit=self.context.max_output_tokens,
            )
        return result

    async def _call_model(self, rendered: RenderedPrompt, autonomy: AutonomyConfig, cfg: Config) -> LLMResponse:
        self._set_state(TurnState.AWAITING_MODEL)
        tools = None
        if cfg.model.native_tools and autonomy.level > 1:
            tools = self.registry.get_definitions()

        timeout = cfg.orchestration.model_timeout
        log.debug(
            "Calling model",
            messages=len(rendered.messages),
            prompt_tokens=rendered.token_count,
            summary=rendered.has_summary,
            retrieval=rendered.has_retrieval,
        )
        try:
            return await asyncio.wait_for(
                self.provider.complete(
                    rendered.messages,
                    tools=tools,
                    max_tokens=cfg.context.max_output_tokens,
                    model=cfg.model.model or None,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise BackendTimeoutError(timeout)

    async def _run_tool_calls(
        self,
        calls: list[ToolCall],
        autonomy: AutonomyConfig,
        cfg: Config,
    ) -> list[ToolExecution]:
        executions: list[ToolExecution] = []
        for call in calls:
            if autonomy.level == 1:
                result = ToolResult.failure(call.name, DISABLED_ERROR)
                self._emit_tool_event(call.name, "rejected", result)
                executions.append(ToolExecution(call=call, result=result, approval_required=True))
                continue

            needs_approval = requires_approval(call.name, call.parameters, autonomy)
            if needs_approval:
                self._set_state(TurnState.AWAITING_APPROVAL)
                approved, reason = await self._request_approval(call, self._approval_timeout(cfg))
                if not approved:
                    log.info("Tool call rejected", tool=call.name, reason=reason)
                    result = ToolResult.failure(call.name, reason)
                    self._emit_tool_event(call.name, "rejected", result)
                    executions.append(ToolExecution(call=call, result=result, approval_required=True))
                    continue
                log.info("Tool call approved", tool=call.name)

            self._set_state(TurnState.EXECUTING)
            self._emit_tool_event(call.name, "running")
            result = await self.registry.execute(call.name, call.parameters)
            self._emit_tool_event(call.name, "completed" if result.success else "failed", result)
            executions.append(
                ToolExecution(call=call, result=result, approval_required=needs_approval, executed=True)
            )
        return executions

    def _approval_timeout(self, cfg: Config) -> float:
        if self.approval_timeout is not None:
            return self.approval_timeout
        return cfg.orchestration.approval_timeout

    async def _request_approval(self, call: ToolCall, timeout: float) -> tuple[bool, str]:
        """Ask the approval callback. Anything but an explicit yes is a no."""
        if self.approval_callback is None:
            log.warning("Approval required but no approval callback is set", tool=call.name)
            return False, NO_APPROVER_ERROR
        try:
            outcome = self.approval_callback(call.name, dict(call.parameters))
            if inspect.isawaitable(outcome):
                if timeout and timeout > 0:
                    outcome = await asyncio.wait_for(outcome, timeout=timeout)
                else:
                    outcome = await outcome
        except asyncio.TimeoutError:
            log.warning("Approval timed out", tool=call.name, timeout=timeout)
            return False, APPROVAL_TIMEOUT_ERROR
        except Exception as e:
            log.error("Approval callback failed", tool=call.name, error=str(e))
            return False, f"{REJECTED_ERROR} Approval handler failed: {e}"
        if outcome is True:
            return True, ""
        return False, REJECTED_ERROR
