"""Exception hierarchy and error codes for the cowork host.

Exceptions cover the failure modes raised inside the host process.
Error codes are what crosses the process boundary in ``agent:error``
messages; each one is tagged recoverable or not.
"""
from __future__ import annotations

import asyncio
from enum import Enum


class ErrorCode(str, Enum):
    """Codes carried by ``agent:error`` push messages."""

    INITIALIZATION_FAILED = "INITIALIZATION_FAILED"
    API_KEY_MISSING = "API_KEY_MISSING"
    API_ERROR = "API_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    WORKSPACE_ERROR = "WORKSPACE_ERROR"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    AGENT_NOT_INITIALIZED = "AGENT_NOT_INITIALIZED"
    AGENT_BUSY = "AGENT_BUSY"
    UNKNOWN = "UNKNOWN"


# Recoverable codes leave the session usable; the UI may retry at once.
# Everything else requires a fresh init before another message.
RECOVERABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.API_ERROR,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.UNKNOWN,
    ErrorCode.AGENT_BUSY,
    ErrorCode.TOOL_EXECUTION_FAILED,
    ErrorCode.INVALID_MESSAGE,
})


def is_recoverable(code: ErrorCode) -> bool:
    return code in RECOVERABLE_CODES


_NETWORK_MARKERS = ("network", "fetch", "connection", "econn", "enotfound")
_TIMEOUT_MARKERS = ("timeout", "timed out")
_API_MARKERS = ("401", "403", "429", "overloaded", "rate limit")


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map a run failure onto the run-time subset of the taxonomy.

    Only ``API_ERROR``, ``NETWORK_ERROR``, ``TIMEOUT`` and ``UNKNOWN`` are
    ever returned. Exception types are checked first, then the error text:
    network markers win over timeout markers ("fetch timeout" is a network
    failure), and "API" only matches in upper case so words like "capital"
    stay unclassified.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorCode.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorCode.NETWORK_ERROR

    raw = str(exc)
    text = raw.lower()
    if any(marker in text for marker in _NETWORK_MARKERS):
        return ErrorCode.NETWORK_ERROR
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return ErrorCode.TIMEOUT
    if "API" in raw or any(marker in text for marker in _API_MARKERS):
        return ErrorCode.API_ERROR
    return ErrorCode.UNKNOWN


class CoworkError(Exception):
    """Base exception for all host errors."""


class InvalidMessageError(CoworkError):
    """An inbound command payload did not match its channel's shape."""
    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Invalid {channel} payload: {reason}")


class WorkspaceError(CoworkError):
    """The workspace directory could not be prepared."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Workspace {path} unavailable: {reason}")


class RuntimeUnavailableError(CoworkError):
    """The agent runtime cannot be used (SDK missing, CLI missing, ...)."""


class AgentRunError(CoworkError):
    """The runtime finished a run with an error result."""
    def __init__(self, message: str, subtype: str | None = None):
        self.subtype = subtype
        super().__init__(message)


class QuestionAbandoned(CoworkError):
    """A pending user question was dropped before it was answered."""
    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question {question_id} was abandoned")


class TodoListError(CoworkError):
    """Base class for task-status store failures."""


class TodoListNotFoundError(TodoListError):
    """An operation needed a task list but none exists."""
    def __init__(self) -> None:
        super().__init__("No task list exists. Create one first with TodoWrite.")


class TodoItemNotFoundError(TodoListError):
    """The requested task id is not in the current list."""
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidTransitionError(TodoListError):
    """The requested status change is not in the transition table."""
    def __init__(self, current: str, requested: str, allowed: list[str]):
        self.current = current
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Invalid state transition: {current} -> {requested}. "
            f"Allowed transitions from {current}: {', '.join(allowed)}"
        )


class BlockedReasonRequiredError(TodoListError):
    """A task was moved to blocked without saying why."""
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(
            f"blocked_reason is required when setting task {task_id} to blocked"
        )
