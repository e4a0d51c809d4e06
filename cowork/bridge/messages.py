"""Message envelope and channel catalog shared with the UI process.

Every message carries an ``id`` and a millisecond ``timestamp``; every
outbound message except the init handshake reply also carries the
``requestId`` of the user request it belongs to. Fields are snake_case in
Python and camelCase on the wire.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, ClassVar

from cowork.errors import ErrorCode, InvalidMessageError


class Channel(str, Enum):
    """Channel names for every message kind that crosses the boundary."""

    # UI -> host
    AGENT_INIT = "agent:init"
    AGENT_STATUS = "agent:status"
    AGENT_SEND_MESSAGE = "agent:send-message"
    AGENT_STOP = "agent:stop"
    AGENT_ANSWER = "agent:answer"

    # host -> UI
    AGENT_MESSAGE_CHUNK = "agent:message-chunk"
    AGENT_MESSAGE_COMPLETE = "agent:message-complete"
    AGENT_TOOL_USE = "agent:tool-use"
    AGENT_TOOL_RESULT = "agent:tool-result"
    AGENT_QUESTION = "agent:question"
    AGENT_TODO_UPDATE = "agent:todo-update"
    AGENT_ARTIFACT_CREATED = "agent:artifact-created"
    AGENT_SKILL_LOADED = "agent:skill-loaded"
    AGENT_STATUS_UPDATE = "agent:status-update"
    AGENT_ERROR = "agent:error"


class ProcessingStatus(str, Enum):
    SENDING = "sending"
    PROCESSING = "processing"
    THINKING = "thinking"
    RESPONDING = "responding"
    IDLE = "idle"


def now_millis() -> int:
    return int(time.time() * 1000)


def generate_message_id() -> str:
    """Return a unique message id (``msg_<millis>_<random>``)."""
    return f"msg_{now_millis()}_{uuid.uuid4().hex[:7]}"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _serialize(value: Any) -> Any:
    # Only dataclasses are re-keyed; plain dicts (tool input, details)
    # belong to the agent and pass through untouched.
    if is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            out[_camel(f.name)] = _serialize(item)
        return out
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


# ── Shared value types ──


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class QuestionOption:
    label: str = ""
    value: str = ""
    description: str | None = None


@dataclass
class FileAttachment:
    name: str = ""
    path: str = ""
    mime_type: str = "application/octet-stream"
    size: int = 0


# ── Envelope ──


@dataclass
class IpcMessage:
    """Base envelope for every message."""
    channel: ClassVar[Channel | None] = None

    id: str = field(default_factory=generate_message_id)
    timestamp: int = field(default_factory=now_millis)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire form, omitting ``None`` fields."""
        return _serialize(self)


# ── Command replies ──


@dataclass
class InitResponse(IpcMessage):
    success: bool = True
    error: str | None = None
    warnings: list[str] | None = None
    system_prompt_loaded: bool | None = None


@dataclass
class StatusResponse(IpcMessage):
    initialized: bool = False
    is_running: bool = False
    model: str | None = None
    workspace_path: str | None = None


# ── Outbound pushes ──


@dataclass
class MessageChunk(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_MESSAGE_CHUNK
    request_id: str = ""
    content: str = ""
    is_final: bool = False


@dataclass
class MessageComplete(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_MESSAGE_COMPLETE
    request_id: str = ""
    content: str = ""
    usage: TokenUsage | None = None


@dataclass
class ToolUse(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_TOOL_USE
    request_id: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] = field(default_factory=dict)
    tool_use_id: str = ""


@dataclass
class ToolResult(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_TOOL_RESULT
    request_id: str = ""
    tool_use_id: str = ""
    success: bool = True
    output: str = ""
    error: str | None = None


@dataclass
class Question(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_QUESTION
    request_id: str = ""
    question_id: str = ""
    question: str = ""
    options: list[QuestionOption] = field(default_factory=list)
    multi_select: bool = False


@dataclass
class TodoUpdate(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_TODO_UPDATE
    request_id: str = ""
    todos: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ArtifactCreated(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_ARTIFACT_CREATED
    request_id: str = ""
    artifact: dict[str, Any] = field(default_factory=dict)


@dataclass
class SkillLoaded(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_SKILL_LOADED
    request_id: str = ""
    skill_name: str = ""
    skill_preview: str | None = None


@dataclass
class StatusUpdate(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_STATUS_UPDATE
    request_id: str = ""
    status: ProcessingStatus = ProcessingStatus.IDLE
    message: str = ""


@dataclass
class AgentError(IpcMessage):
    channel: ClassVar[Channel] = Channel.AGENT_ERROR
    request_id: str | None = None
    code: ErrorCode = ErrorCode.UNKNOWN
    message: str = ""
    details: Any = None
    recoverable: bool = True


# ── Inbound commands ──


@dataclass
class InitRequest(IpcMessage):
    workspace_path: str | None = None
    model: str | None = None
    additional_instructions: str | None = None


@dataclass
class SendMessageRequest(IpcMessage):
    content: str = ""
    attachments: list[FileAttachment] = field(default_factory=list)


@dataclass
class AnswerRequest(IpcMessage):
    question_id: str = ""
    request_id: str = ""
    selected_values: list[str] = field(default_factory=list)


def _require_dict(channel: Channel, data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidMessageError(channel.value, "payload must be an object")
    return data


def _optional_str(channel: Channel, data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidMessageError(channel.value, f"{key} must be a string")
    return value


def _envelope(data: dict[str, Any]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if isinstance(data.get("id"), str) and data["id"]:
        kwargs["id"] = data["id"]
    if isinstance(data.get("timestamp"), int):
        kwargs["timestamp"] = data["timestamp"]
    return kwargs


def parse_init_request(data: Any) -> InitRequest:
    channel = Channel.AGENT_INIT
    data = _require_dict(channel, data)
    return InitRequest(
        workspace_path=_optional_str(channel, data, "workspacePath"),
        model=_optional_str(channel, data, "model"),
        additional_instructions=_optional_str(channel, data, "additionalInstructions"),
        **_envelope(data),
    )


def _parse_attachment(channel: Channel, raw: Any) -> FileAttachment:
    if not isinstance(raw, dict):
        raise InvalidMessageError(channel.value, "attachment must be an object")
    path = raw.get("path")
    if not isinstance(path, str) or not path:
        raise InvalidMessageError(channel.value, "attachment path is required")
    size = raw.get("size", 0)
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        raise InvalidMessageError(channel.value, "attachment size must be a non-negative integer")
    return FileAttachment(
        name=str(raw.get("name") or path.rsplit("/", 1)[-1]),
        path=path,
        mime_type=str(raw.get("mimeType") or "application/octet-stream"),
        size=size,
    )


def parse_send_message_request(data: Any) -> SendMessageRequest:
    channel = Channel.AGENT_SEND_MESSAGE
    data = _require_dict(channel, data)
    content = data.get("content")
    if not isinstance(content, str):
        raise InvalidMessageError(channel.value, "content must be a string")
    raw_attachments = data.get("attachments") or []
    if not isinstance(raw_attachments, list):
        raise InvalidMessageError(channel.value, "attachments must be a list")
    return SendMessageRequest(
        content=content,
        attachments=[_parse_attachment(channel, a) for a in raw_attachments],
        **_envelope(data),
    )


def parse_answer_request(data: Any) -> AnswerRequest:
    channel = Channel.AGENT_ANSWER
    data = _require_dict(channel, data)
    question_id = data.get("questionId")
    if not isinstance(question_id, str) or not question_id:
        raise InvalidMessageError(channel.value, "questionId is required")
    values = data.get("selectedValues")
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise InvalidMessageError(channel.value, "selectedValues must be a list of strings")
    request_id = data.get("requestId") or ""
    if not isinstance(request_id, str):
        raise InvalidMessageError(channel.value, "requestId must be a string")
    return AnswerRequest(
        question_id=question_id,
        request_id=request_id,
        selected_values=list(values),
        **_envelope(data),
    )


def parse_question_options(raw: Any) -> list[QuestionOption]:
    """Normalize agent-supplied options (dicts or plain strings)."""
    options: list[QuestionOption] = []
    if not isinstance(raw, list):
        return options
    for item in raw:
        if isinstance(item, str):
            options.append(QuestionOption(label=item, value=item))
        elif isinstance(item, dict):
            label = str(item.get("label") or item.get("value") or "").strip()
            if not label:
                continue
            description = item.get("description")
            options.append(QuestionOption(
                label=label,
                value=str(item.get("value") or label),
                description=str(description) if description else None,
            ))
    return options
