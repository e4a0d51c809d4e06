"""Bridge between the UI process and the chat orchestrator.

Owns the bridge-visible state (initialized, in-flight request, model,
workspace), admits or rejects UI commands, correlates pending user
questions with their answers, and is the only component that pushes
messages to the UI.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cowork.bridge.commands import (
    AnswerCommand,
    CommandHandler,
    InitCommand,
    MessageCommand,
)
from cowork.bridge.messages import (
    AgentError,
    AnswerRequest,
    ArtifactCreated,
    InitRequest,
    IpcMessage,
    MessageChunk,
    MessageComplete,
    ProcessingStatus,
    Question,
    QuestionOption,
    SendMessageRequest,
    SkillLoaded,
    StatusResponse,
    StatusUpdate,
    TodoUpdate,
    TokenUsage,
    ToolResult,
    ToolUse,
    InitResponse,
    generate_message_id,
)
from cowork.bridge.push import PushChannel
from cowork.config import HostConfig
from cowork.errors import ErrorCode, QuestionAbandoned, WorkspaceError, is_recoverable

logger = logging.getLogger(__name__)


@dataclass
class BridgeState:
    initialized: bool = False
    model: str | None = None
    workspace_path: str | None = None
    # The single authoritative busy flag: the request currently in flight.
    active_request_id: str | None = None

    @property
    def running(self) -> bool:
        return self.active_request_id is not None


class AgentBridge:
    """Admission control, correlation, and the UI-facing send primitives.

    Usage:
        bridge = AgentBridge(push, config)
        bridge.attach(orchestrator)
        await bridge.init(InitRequest(workspace_path="/ws"))
        await bridge.send_message(SendMessageRequest(content="hello"))
    """

    def __init__(self, push: PushChannel, config: HostConfig | None = None) -> None:
        self._push_channel = push
        self._config = config or HostConfig()
        self._handler: CommandHandler | None = None
        self._state = BridgeState()
        self._init_error: str | None = None
        # Pending user questions: question_id -> Future[list[str]]
        self._pending_questions: dict[str, asyncio.Future[list[str]]] = {}

    def attach(self, handler: CommandHandler) -> None:
        self._handler = handler

    @property
    def state(self) -> BridgeState:
        return BridgeState(
            initialized=self._state.initialized,
            model=self._state.model,
            workspace_path=self._state.workspace_path,
            active_request_id=self._state.active_request_id,
        )

    @property
    def initialized(self) -> bool:
        return self._state.initialized

    @property
    def running(self) -> bool:
        return self._state.running

    @property
    def active_request_id(self) -> str | None:
        return self._state.active_request_id

    @property
    def pending_question_ids(self) -> list[str]:
        return list(self._pending_questions)

    # ── Commands from the UI ──

    async def init(self, request: InitRequest) -> InitResponse:
        logger.info(
            "Init requested workspace=%s model=%s",
            request.workspace_path or "<default>",
            request.model or "<default>",
        )
        if self._handler is None:
            return InitResponse(id=request.id, success=False, error="No agent service attached")
        if self._state.running:
            return InitResponse(
                id=request.id,
                success=False,
                error="Agent is currently processing another request",
            )

        try:
            workspace = self._resolve_workspace(request.workspace_path)
        except WorkspaceError as exc:
            logger.error("Init failed: %s", exc)
            self._state.initialized = False
            return InitResponse(id=request.id, success=False, error=str(exc))

        self._state.workspace_path = str(workspace)
        self._state.model = request.model or self._config.default_model
        self._init_error = None
        # Optimistic; the handler revises it through set_initialized(False).
        self._state.initialized = True

        try:
            await self._handler.on_init(InitCommand(
                request_id=request.id,
                workspace_path=self._state.workspace_path,
                model=self._state.model,
                additional_instructions=request.additional_instructions,
            ))
        except Exception as exc:
            logger.exception("Agent service init failed")
            self.set_initialized(False, str(exc))

        if not self._state.initialized:
            return InitResponse(
                id=request.id,
                success=False,
                error=self._init_error or "Initialization failed",
            )
        logger.info("Agent initialized workspace=%s model=%s", workspace, self._state.model)
        return InitResponse(id=request.id, success=True, system_prompt_loaded=True)

    def status(self) -> StatusResponse:
        return StatusResponse(
            initialized=self._state.initialized,
            is_running=self._state.running,
            model=self._state.model,
            workspace_path=self._state.workspace_path,
        )

    async def send_message(self, request: SendMessageRequest) -> dict[str, str]:
        request_id = request.id
        logger.info(
            "Message received request=%s length=%d attachments=%d running=%s initialized=%s",
            request_id,
            len(request.content),
            len(request.attachments),
            self._state.running,
            self._state.initialized,
        )

        if not self._state.initialized or self._handler is None:
            logger.info("Rejecting request=%s: not initialized", request_id)
            self.send_error(
                request_id,
                ErrorCode.AGENT_NOT_INITIALIZED,
                "Agent has not been initialized",
            )
            return {"requestId": request_id}

        if self._state.running:
            logger.info(
                "Rejecting request=%s: busy with %s",
                request_id,
                self._state.active_request_id,
            )
            self.send_error(
                request_id,
                ErrorCode.AGENT_BUSY,
                "Agent is currently processing another request",
            )
            return {"requestId": request_id}

        self._state.active_request_id = request_id
        self.send_status_update(
            request_id, ProcessingStatus.PROCESSING, "Processing your request...",
        )
        try:
            await self._handler.on_message(MessageCommand(
                request_id=request_id,
                content=request.content,
                attachments=list(request.attachments),
            ))
        except Exception as exc:
            # Dispatch never started a run, so the flag set above is ours to undo.
            logger.exception("Dispatch failed request=%s", request_id)
            self.send_error(request_id, ErrorCode.UNKNOWN, str(exc))
            self.mark_complete(request_id)
        return {"requestId": request_id}

    async def stop(self) -> dict[str, bool]:
        logger.info("Stop requested active=%s", self._state.active_request_id)
        if self._handler is not None:
            await self._handler.on_stop()
        self._state.active_request_id = None
        self._cancel_pending_questions()
        return {"success": True}

    def answer(self, answer: AnswerRequest) -> dict[str, bool]:
        future = self._pending_questions.pop(answer.question_id, None)
        if future is None or future.done():
            logger.warning(
                "Answer ignored question=%s (missing or already done)",
                answer.question_id,
            )
            return {"success": False}

        future.set_result(list(answer.selected_values))
        logger.info(
            "Question answered question=%s request=%s values=%d",
            answer.question_id,
            answer.request_id,
            len(answer.selected_values),
        )
        if self._handler is not None:
            self._handler.on_answer(AnswerCommand(
                question_id=answer.question_id,
                request_id=answer.request_id,
                selected_values=list(answer.selected_values),
            ))
        return {"success": True}

    # ── Calls from the agent service ──

    def set_initialized(self, success: bool, error: str | None = None) -> None:
        self._state.initialized = success
        if not success:
            self._init_error = error

    def mark_complete(self, request_id: str | None = None) -> None:
        """Clear the busy flag.

        With a request id, only that request's flag is cleared; a stale or
        rejected request can never release another request's slot.
        """
        active = self._state.active_request_id
        if request_id is not None and request_id != active:
            logger.debug(
                "mark_complete ignored request=%s active=%s", request_id, active,
            )
            return
        logger.info("Request complete request=%s", active)
        self._state.active_request_id = None

    async def ask_question(
        self,
        request_id: str,
        question: str,
        options: list[QuestionOption],
        multi_select: bool = False,
    ) -> list[str]:
        """Push a question to the UI and suspend until it is answered.

        Returns the selected values. Returns ``[]`` when the configured
        question timeout elapses. Raises ``QuestionAbandoned`` when a stop
        drops the question.
        """
        question_id = generate_message_id()
        loop = asyncio.get_running_loop()
        future: asyncio.Future[list[str]] = loop.create_future()
        self._pending_questions[question_id] = future

        self._push(Question(
            request_id=request_id,
            question_id=question_id,
            question=question,
            options=list(options),
            multi_select=multi_select,
        ))
        logger.info(
            "Question pushed request=%s question=%s options=%d multi=%s",
            request_id,
            question_id,
            len(options),
            multi_select,
        )

        timeout = self._config.user_question_timeout_seconds
        try:
            if timeout <= 0:
                return await future
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Question %s unanswered after %.1fs; continuing without an answer",
                question_id,
                timeout,
            )
            return []
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if future.cancelled() and (task is None or not task.cancelling()):
                raise QuestionAbandoned(question_id) from None
            raise
        finally:
            self._pending_questions.pop(question_id, None)

    def send_message_chunk(self, request_id: str, content: str, is_final: bool = False) -> None:
        self._push(MessageChunk(request_id=request_id, content=content, is_final=is_final))

    def send_message_complete(
        self,
        request_id: str,
        content: str,
        usage: TokenUsage | None = None,
    ) -> None:
        self._push(MessageComplete(request_id=request_id, content=content, usage=usage))
        self.send_status_update(request_id, ProcessingStatus.IDLE, "")
        self.mark_complete(request_id)

    def send_tool_use(
        self,
        request_id: str,
        tool_name: str,
        tool_input: dict[str, Any],
        tool_use_id: str,
    ) -> None:
        self._push(ToolUse(
            request_id=request_id,
            tool_name=tool_name,
            tool_input=tool_input,
            tool_use_id=tool_use_id,
        ))

    def send_tool_result(
        self,
        request_id: str,
        tool_use_id: str,
        success: bool,
        output: str,
        error: str | None = None,
    ) -> None:
        self._push(ToolResult(
            request_id=request_id,
            tool_use_id=tool_use_id,
            success=success,
            output=output,
            error=error,
        ))

    def send_todo_update(self, request_id: str, todos: list[dict[str, Any]]) -> None:
        self._push(TodoUpdate(request_id=request_id, todos=todos))

    def send_artifact_created(self, request_id: str, artifact: dict[str, Any]) -> None:
        self._push(ArtifactCreated(request_id=request_id, artifact=artifact))

    def send_skill_loaded(
        self,
        request_id: str,
        skill_name: str,
        preview: str | None = None,
    ) -> None:
        self._push(SkillLoaded(request_id=request_id, skill_name=skill_name, skill_preview=preview))

    def send_status_update(
        self,
        request_id: str,
        status: ProcessingStatus,
        message: str,
    ) -> None:
        self._push(StatusUpdate(request_id=request_id, status=status, message=message))

    def send_error(
        self,
        request_id: str | None,
        code: ErrorCode,
        message: str,
        details: Any = None,
    ) -> None:
        recoverable = is_recoverable(code)
        logger.warning(
            "Agent error request=%s code=%s recoverable=%s: %s",
            request_id,
            code.value,
            recoverable,
            message,
        )
        self._push(AgentError(
            request_id=request_id,
            code=code,
            message=message,
            details=details,
            recoverable=recoverable,
        ))
        if not recoverable:
            self.mark_complete(request_id)

    # ── Lifecycle ──

    def cleanup(self) -> None:
        """Drop all state and abandon pending questions."""
        logger.info("Bridge cleanup")
        self._cancel_pending_questions()
        self._state = BridgeState()
        self._init_error = None

    # ── Internals ──

    def _resolve_workspace(self, requested: str | None) -> Path:
        if requested:
            return Path(requested).expanduser()
        default = Path(self._config.default_workspace).expanduser()
        try:
            default.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WorkspaceError(str(default), str(exc)) from exc
        logger.info("No workspace provided, using default: %s", default)
        return default

    def _cancel_pending_questions(self) -> None:
        for question_id, future in list(self._pending_questions.items()):
            if not future.done():
                future.cancel()
                logger.debug("Cancelled pending question: %s", question_id)
        self._pending_questions.clear()

    def _push(self, message: IpcMessage) -> None:
        if message.channel is None:
            raise ValueError(f"{type(message).__name__} has no push channel")
        self._push_channel.publish(message.channel.value, message.to_dict())
