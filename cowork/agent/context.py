"""Per-request broadcast context and tool execution records.

A ``RequestContext`` is created for each accepted message and discarded
when its run ends. Store broadcasters are bound to it so every push
carries the right request id.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from cowork.bridge.messages import ProcessingStatus, TokenUsage

if TYPE_CHECKING:
    from cowork.bridge.bridge import AgentBridge
    from cowork.state.artifacts import Artifact
    from cowork.state.todos import TodoList

logger = logging.getLogger(__name__)


class ToolStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ToolExecution:
    id: str
    tool_use_id: str
    tool_name: str
    tool_input: dict[str, Any] = field(default_factory=dict)
    status: ToolStatus = ToolStatus.RUNNING
    output: str | None = None
    error: str | None = None
    started_at: str = field(default_factory=_now)
    completed_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "toolUseId": self.tool_use_id,
            "toolName": self.tool_name,
            "toolInput": self.tool_input,
            "status": self.status.value,
            "startedAt": self.started_at,
        }
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        return data


def tool_result_text(result: Any) -> str:
    """Best-effort plain text from a tool result payload."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        for key in ("text", "stdout", "output", "result", "content"):
            value = result.get(key)
            if isinstance(value, str):
                return value
            if isinstance(value, (dict, list)):
                nested = tool_result_text(value)
                if nested:
                    return nested
        return json.dumps(result, default=str)
    if isinstance(result, list):
        chunks = [tool_result_text(item) for item in result]
        return "\n".join(c for c in chunks if c)
    return str(result)


class RequestContext:
    """Everything one run accumulates, plus the broadcasters bound to it."""

    def __init__(self, request_id: str, bridge: AgentBridge) -> None:
        self.request_id = request_id
        self._bridge = bridge
        self.text_parts: list[str] = []
        self.usage: TokenUsage | None = None
        self.tools: dict[str, ToolExecution] = {}
        # tool_use_id -> skill name / written file path, resolved on result
        self.pending_skills: dict[str, str] = {}
        self.pending_writes: dict[str, str] = {}
        self._last_status: tuple[ProcessingStatus, str] | None = None

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def tool_executions(self) -> list[ToolExecution]:
        """Copies of this run's tool executions, in start order."""
        return [replace(e) for e in self.tools.values()]

    def set_status(self, status: ProcessingStatus, message: str) -> None:
        """Push a status update unless it repeats the last one."""
        if (status, message) == self._last_status:
            return
        self._last_status = (status, message)
        self._bridge.send_status_update(self.request_id, status, message)

    def start_tool(
        self,
        tool_use_id: str,
        tool_name: str,
        tool_input: dict[str, Any],
    ) -> ToolExecution:
        execution = ToolExecution(
            id=f"exec_{uuid.uuid4().hex[:12]}",
            tool_use_id=tool_use_id,
            tool_name=tool_name,
            tool_input=tool_input,
        )
        self.tools[tool_use_id] = execution
        return execution

    def finish_tool(
        self,
        tool_use_id: str,
        success: bool,
        output: str,
        error: str | None = None,
    ) -> ToolExecution | None:
        execution = self.tools.get(tool_use_id)
        if execution is None:
            logger.debug(
                "Tool result without a matching tool use request=%s tool_use_id=%s",
                self.request_id, tool_use_id,
            )
            return None
        execution.status = ToolStatus.SUCCESS if success else ToolStatus.ERROR
        execution.output = output
        execution.error = error
        execution.completed_at = _now()
        return execution

    # ── Store broadcasters ──

    def broadcast_todos(self, todo_list: TodoList) -> None:
        self._bridge.send_todo_update(
            self.request_id, [item.to_dict() for item in todo_list.items],
        )

    def broadcast_artifact(self, artifact: Artifact) -> None:
        self._bridge.send_artifact_created(self.request_id, artifact.to_dict())
