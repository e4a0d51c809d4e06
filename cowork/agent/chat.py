"""Chat orchestrator: turns one accepted user message into one agent run.

The Bridge owns admission and the busy flag; the orchestrator owns the run
task, the conversation session handle, the system prompt, and the
classification of runtime messages into UI pushes.

State machine::

    idle --on_message--> processing --complete/abort--> idle
                                    --failure--------> error --on_message--> processing
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from cowork.agent.context import RequestContext, ToolExecution, tool_result_text
from cowork.agent.prompts import build_system_prompt
from cowork.agent.questions import extract_questions, format_answer, with_answers
from cowork.agent.runtime import QUESTION_TOOL, AgentRuntime, PermissionHandler, RunOptions
from cowork.attachments import create_attachment_summary, process_attachments
from cowork.bridge.bridge import AgentBridge
from cowork.bridge.commands import AnswerCommand, InitCommand, MessageCommand
from cowork.bridge.messages import ProcessingStatus, TokenUsage
from cowork.config import HostConfig
from cowork.errors import (
    AgentRunError,
    ErrorCode,
    QuestionAbandoned,
    RuntimeUnavailableError,
    TodoListError,
    classify_exception,
)
from cowork.state.artifacts import ArtifactTracker
from cowork.state.todos import TodoStore, items_from_tool_input

logger = logging.getLogger(__name__)

TODO_TOOL = "TodoWrite"
SKILL_TOOL = "Skill"
WRITE_TOOLS = frozenset({"Write"})

SKILL_PREVIEW_CHARS = 200


class OrchestratorState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    ERROR = "error"


class ChatOrchestrator:
    """Implements the Bridge's command interface on top of an AgentRuntime.

    Usage:
        orchestrator = ChatOrchestrator(bridge, ClaudeAgentRuntime(), config)
        bridge.attach(orchestrator)
    """

    def __init__(
        self,
        bridge: AgentBridge,
        runtime: AgentRuntime,
        config: HostConfig | None = None,
        todos: TodoStore | None = None,
        artifacts: ArtifactTracker | None = None,
    ) -> None:
        self._bridge = bridge
        self._runtime = runtime
        self._config = config or HostConfig()
        self.todos = todos or TodoStore()
        self.artifacts = artifacts or ArtifactTracker()

        self._state = OrchestratorState.IDLE
        self._workspace: str | None = None
        self._model: str | None = None
        self._system_prompt = ""
        self._session_id: str | None = None

        self._task: asyncio.Task | None = None
        self._abort: asyncio.Event | None = None
        self._context: RequestContext | None = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def run_task(self) -> asyncio.Task | None:
        return self._task

    @property
    def tool_executions(self) -> list[ToolExecution]:
        """Tool executions of the latest run, oldest first."""
        if self._context is None:
            return []
        return self._context.tool_executions

    # ── Command interface ──

    async def on_init(self, command: InitCommand) -> None:
        self._workspace = command.workspace_path
        self._model = command.model
        self._system_prompt = build_system_prompt(
            command.workspace_path, command.additional_instructions,
        )
        # A fresh init starts a fresh conversation.
        self._session_id = None
        self._context = None
        self.todos.clear()
        self.artifacts.clear()
        self.artifacts.set_workspace(command.workspace_path)

        try:
            self._runtime.check()
        except RuntimeUnavailableError as exc:
            logger.error("Agent runtime unavailable: %s", exc)
            self._state = OrchestratorState.ERROR
            self._bridge.set_initialized(False, str(exc))
            self._bridge.send_error(None, ErrorCode.INITIALIZATION_FAILED, str(exc))
            return

        self._state = OrchestratorState.IDLE
        self._bridge.set_initialized(True)
        logger.info(
            "Orchestrator ready workspace=%s model=%s prompt_chars=%d",
            self._workspace, self._model, len(self._system_prompt),
        )

    async def on_message(self, command: MessageCommand) -> None:
        request_id = command.request_id
        if self._task is not None and not self._task.done():
            # The previous run was stopped but has not finished unwinding.
            logger.info("Rejecting request=%s: previous run still unwinding", request_id)
            self._bridge.send_error(
                request_id,
                ErrorCode.AGENT_BUSY,
                "Agent is currently processing another request",
            )
            self._bridge.mark_complete(request_id)
            return

        ctx = RequestContext(request_id, self._bridge)
        self._context = ctx
        self.todos.set_broadcaster(ctx.broadcast_todos)
        self.artifacts.set_broadcaster(ctx.broadcast_artifact)

        abort = asyncio.Event()
        self._abort = abort
        self._state = OrchestratorState.PROCESSING
        self._task = asyncio.create_task(
            self._run(command, ctx, abort), name=f"cowork-run-{request_id}",
        )

    async def on_stop(self) -> None:
        if self._abort is not None:
            self._abort.set()
        task = self._task
        if task is not None and not task.done():
            logger.info("Cancelling run task %s", task.get_name())
            task.cancel()

    def on_answer(self, command: AnswerCommand) -> None:
        logger.info(
            "Answer delivered question=%s request=%s selected=%s",
            command.question_id,
            command.request_id,
            command.selected_values,
        )

    async def cleanup(self) -> None:
        await self.on_stop()
        task = self._task
        if task is not None and not task.done():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.todos.clear_broadcaster()
        self.artifacts.clear_broadcaster()

    # ── Run ──

    async def _run(
        self,
        command: MessageCommand,
        ctx: RequestContext,
        abort: asyncio.Event,
    ) -> None:
        request_id = command.request_id
        try:
            prompt = command.content
            if command.attachments:
                logger.info("%s", create_attachment_summary(command.attachments))
                processed = process_attachments(
                    command.attachments, self._config.max_attachment_bytes,
                )
                if not processed.attachments:
                    self._state = OrchestratorState.IDLE
                    self._bridge.send_error(
                        request_id,
                        ErrorCode.INVALID_MESSAGE,
                        "; ".join(processed.errors),
                        details={"errors": processed.errors},
                    )
                    return
                prompt += processed.context_text

            options = RunOptions(
                system_prompt=self._system_prompt,
                cwd=self._workspace or ".",
                model=self._model or self._config.default_model,
                allowed_tools=list(self._config.allowed_tools),
                resume=self._session_id,
                can_use_tool=self._permission_handler(ctx),
            )

            async for message in self._runtime.run(prompt, options):
                if abort.is_set():
                    logger.info("Run aborted request=%s", request_id)
                    break
                self._handle_message(ctx, message)

            self._state = OrchestratorState.IDLE
            if not abort.is_set():
                self._bridge.send_message_complete(request_id, ctx.text, ctx.usage)
        except asyncio.CancelledError:
            logger.info("Run cancelled request=%s", request_id)
            self._state = OrchestratorState.IDLE
            raise
        except QuestionAbandoned as exc:
            logger.info("Run abandoned request=%s: %s", request_id, exc)
            self._state = OrchestratorState.IDLE
        except Exception as exc:
            if abort.is_set():
                logger.info("Run failed after abort request=%s: %s", request_id, exc)
                self._state = OrchestratorState.IDLE
            else:
                code = classify_exception(exc)
                logger.exception("Run failed request=%s code=%s", request_id, code.value)
                self._state = OrchestratorState.ERROR
                self._bridge.send_error(
                    request_id, code, str(exc) or type(exc).__name__,
                )
        finally:
            self.todos.clear_broadcaster()
            self.artifacts.clear_broadcaster()
            self._bridge.mark_complete(request_id)

    def _permission_handler(self, ctx: RequestContext) -> PermissionHandler:
        async def can_use_tool(tool_name: str, tool_input: dict[str, Any], context: Any):
            from claude_agent_sdk.types import PermissionResultAllow, PermissionResultDeny

            if tool_name != QUESTION_TOOL:
                return PermissionResultAllow()

            questions = extract_questions(tool_input)
            if not questions:
                logger.warning(
                    "%s without a question request=%s input=%s",
                    QUESTION_TOOL, ctx.request_id, str(tool_input)[:200],
                )
                return PermissionResultDeny(
                    message="Could not extract a question from the tool input.",
                )

            answers: dict[str, str] = {}
            for asked in questions:
                ctx.set_status(ProcessingStatus.PROCESSING, "Waiting for your answer...")
                values = await self._bridge.ask_question(
                    ctx.request_id, asked.question, asked.options, asked.multi_select,
                )
                answers[asked.question] = format_answer(values)
            return PermissionResultAllow(updated_input=with_answers(tool_input, answers))

        return can_use_tool

    # ── Message classification ──

    def _handle_message(self, ctx: RequestContext, message: Any) -> None:
        data = getattr(message, "data", None)
        if getattr(message, "subtype", None) == "init" and isinstance(data, dict):
            session_id = data.get("session_id")
            if session_id:
                self._session_id = str(session_id)
                logger.info("Session started %s", self._session_id[:8])
            return

        content = getattr(message, "content", None)
        if isinstance(content, list):
            for block in content:
                if hasattr(block, "thinking"):
                    ctx.set_status(ProcessingStatus.THINKING, "Thinking...")
                elif hasattr(block, "text"):
                    self._on_text(ctx, str(block.text or ""))
                elif hasattr(block, "name") and hasattr(block, "input"):
                    self._on_tool_use(ctx, block)
                elif hasattr(block, "tool_use_id"):
                    self._on_tool_result(ctx, block)

        if hasattr(message, "result"):
            self._on_result(ctx, message)

    def _on_text(self, ctx: RequestContext, text: str) -> None:
        if not text:
            return
        ctx.set_status(ProcessingStatus.RESPONDING, "Responding...")
        ctx.text_parts.append(text)
        self._bridge.send_message_chunk(ctx.request_id, text, False)

    def _on_tool_use(self, ctx: RequestContext, block: Any) -> None:
        tool_name = str(block.name)
        tool_use_id = str(getattr(block, "id", "") or "")
        tool_input = block.input if isinstance(block.input, dict) else {}
        logger.info(
            "Tool use request=%s id=%s name=%s",
            ctx.request_id, tool_use_id[:12], tool_name,
        )
        ctx.start_tool(tool_use_id, tool_name, tool_input)
        ctx.set_status(ProcessingStatus.PROCESSING, f"Using {tool_name}...")
        self._bridge.send_tool_use(ctx.request_id, tool_name, tool_input, tool_use_id)

        if tool_name == TODO_TOOL:
            items = items_from_tool_input(tool_input.get("todos"))
            try:
                self.todos.replace_list(items)
            except TodoListError as exc:
                logger.warning("Ignoring invalid task list from %s: %s", TODO_TOOL, exc)
        elif tool_name == SKILL_TOOL:
            skill = tool_input.get("skill") or tool_input.get("command") or tool_input.get("name")
            if skill:
                ctx.pending_skills[tool_use_id] = str(skill)
        elif tool_name in WRITE_TOOLS:
            path = tool_input.get("file_path") or tool_input.get("path")
            if path:
                ctx.pending_writes[tool_use_id] = str(path)

    def _on_tool_result(self, ctx: RequestContext, block: Any) -> None:
        tool_use_id = str(getattr(block, "tool_use_id", "") or "")
        is_error = bool(getattr(block, "is_error", False))
        output = tool_result_text(getattr(block, "content", ""))
        error = output if is_error else None
        logger.info(
            "Tool result request=%s id=%s is_error=%s",
            ctx.request_id, tool_use_id[:12], is_error,
        )
        ctx.finish_tool(tool_use_id, not is_error, output, error)
        self._bridge.send_tool_result(ctx.request_id, tool_use_id, not is_error, output, error)

        path = ctx.pending_writes.pop(tool_use_id, None)
        skill = ctx.pending_skills.pop(tool_use_id, None)
        if is_error:
            return
        if path:
            self.artifacts.track(path)
        if skill:
            preview = output[:SKILL_PREVIEW_CHARS] or None
            self._bridge.send_skill_loaded(ctx.request_id, skill, preview)

    def _on_result(self, ctx: RequestContext, message: Any) -> None:
        session_id = getattr(message, "session_id", None)
        if session_id:
            self._session_id = str(session_id)

        usage = getattr(message, "usage", None)
        if isinstance(usage, dict):
            ctx.usage = TokenUsage(
                input_tokens=int(usage.get("input_tokens", 0) or 0),
                output_tokens=int(usage.get("output_tokens", 0) or 0),
            )

        if getattr(message, "is_error", False):
            subtype = getattr(message, "subtype", None)
            raise AgentRunError(
                str(message.result or subtype or "Agent run failed"), subtype,
            )
