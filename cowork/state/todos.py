"""Task-status store for the agent's visible task list.

Holds at most one list. Every successful mutation (except ``clear``)
notifies the bound broadcaster with the whole list; the orchestrator binds
a broadcaster per request so updates carry that request's id.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from cowork.errors import (
    BlockedReasonRequiredError,
    InvalidTransitionError,
    TodoItemNotFoundError,
    TodoListError,
    TodoListNotFoundError,
)

logger = logging.getLogger(__name__)


class TodoStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


VALID_TRANSITIONS: dict[TodoStatus, tuple[TodoStatus, ...]] = {
    TodoStatus.PENDING: (TodoStatus.IN_PROGRESS, TodoStatus.BLOCKED),
    TodoStatus.IN_PROGRESS: (
        TodoStatus.COMPLETED,
        TodoStatus.BLOCKED,
        TodoStatus.PENDING,
    ),
    TodoStatus.BLOCKED: (TodoStatus.PENDING, TodoStatus.IN_PROGRESS),
    TodoStatus.COMPLETED: (TodoStatus.PENDING,),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _todo_id(dt: datetime, index: int) -> str:
    return f"todo_{int(dt.timestamp() * 1000)}_{index}"


@dataclass
class TodoItem:
    id: str
    content: str
    status: TodoStatus = TodoStatus.PENDING
    created_at: str = ""
    updated_at: str = ""
    completed_at: str | None = None
    blocked_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        if self.blocked_reason is not None:
            data["blockedReason"] = self.blocked_reason
        return data


@dataclass
class TodoList:
    items: list[TodoItem] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class TodoSummary:
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    blocked: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "inProgress": self.in_progress,
            "completed": self.completed,
            "blocked": self.blocked,
        }


TodoBroadcaster = Callable[[TodoList], None]


def _copy_list(todo_list: TodoList) -> TodoList:
    return TodoList(
        items=[replace(item) for item in todo_list.items],
        created_at=todo_list.created_at,
        updated_at=todo_list.updated_at,
    )


def _check_item(item: TodoItem) -> None:
    if not item.content or not item.content.strip():
        raise TodoListError(f"Task {item.id} has empty content")
    if (item.status == TodoStatus.COMPLETED) != (item.completed_at is not None):
        raise TodoListError(
            f"Task {item.id}: completedAt must be set only when completed"
        )
    if (item.status == TodoStatus.BLOCKED) != bool(item.blocked_reason):
        raise TodoListError(
            f"Task {item.id}: blockedReason must be set only when blocked"
        )


class TodoStore:
    """Single task list with validated status transitions.

    ``clock`` returns an aware UTC datetime; tests inject a fake one.
    Consumers only ever receive copies of the stored list.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or _utc_now
        self._list: TodoList | None = None
        self._broadcaster: TodoBroadcaster | None = None

    # ── Broadcaster binding ──

    def set_broadcaster(self, broadcaster: TodoBroadcaster) -> None:
        self._broadcaster = broadcaster

    def clear_broadcaster(self) -> None:
        self._broadcaster = None

    @property
    def has_broadcaster(self) -> bool:
        return self._broadcaster is not None

    # ── Mutations ──

    def create_list(self, contents: list[str]) -> TodoList:
        """Replace the current list with fresh pending items."""
        if not contents:
            raise TodoListError("Cannot create a task list with no tasks")
        for raw in contents:
            if not isinstance(raw, str) or not raw.strip():
                raise TodoListError("Task content must be a non-empty string")

        now = self._clock()
        stamp = _iso(now)
        items = [
            TodoItem(
                id=_todo_id(now, index),
                content=raw.strip(),
                status=TodoStatus.PENDING,
                created_at=stamp,
                updated_at=stamp,
            )
            for index, raw in enumerate(contents)
        ]
        self._list = TodoList(items=items, created_at=stamp, updated_at=stamp)
        logger.info("Task list created with %d items", len(items))
        self._broadcast()
        return _copy_list(self._list)

    def replace_list(self, items: list[TodoItem]) -> TodoList:
        """Replace the current list with already-built items."""
        for item in items:
            _check_item(item)
        stamp = _iso(self._clock())
        created = self._list.created_at if self._list is not None else stamp
        self._list = TodoList(
            items=[replace(item) for item in items],
            created_at=created,
            updated_at=stamp,
        )
        logger.info("Task list replaced with %d items", len(items))
        self._broadcast()
        return _copy_list(self._list)

    def update_status(
        self,
        task_id: str,
        status: TodoStatus | str,
        blocked_reason: str | None = None,
    ) -> TodoItem:
        """Move one item to *status* if the transition table allows it."""
        if self._list is None:
            raise TodoListNotFoundError()

        index = next(
            (i for i, item in enumerate(self._list.items) if item.id == task_id),
            None,
        )
        if index is None:
            raise TodoItemNotFoundError(task_id)

        item = self._list.items[index]
        try:
            new_status = TodoStatus(status)
        except ValueError:
            raise InvalidTransitionError(
                item.status.value,
                str(status),
                [s.value for s in VALID_TRANSITIONS[item.status]],
            ) from None

        allowed = VALID_TRANSITIONS[item.status]
        if new_status not in allowed:
            raise InvalidTransitionError(
                item.status.value, new_status.value, [s.value for s in allowed],
            )
        if new_status == TodoStatus.BLOCKED and not (blocked_reason and blocked_reason.strip()):
            raise BlockedReasonRequiredError(task_id)

        stamp = _iso(self._clock())
        updated = TodoItem(
            id=item.id,
            content=item.content,
            status=new_status,
            created_at=item.created_at,
            updated_at=stamp,
            completed_at=stamp if new_status == TodoStatus.COMPLETED else None,
            blocked_reason=blocked_reason if new_status == TodoStatus.BLOCKED else None,
        )
        self._list.items[index] = updated
        self._list.updated_at = stamp
        logger.info(
            "Task %s: %s -> %s", task_id, item.status.value, new_status.value,
        )
        self._broadcast()
        return replace(updated)

    def clear(self) -> None:
        """Drop the list. Does not notify."""
        self._list = None

    # ── Reads ──

    def get_list(self) -> TodoList | None:
        return _copy_list(self._list) if self._list is not None else None

    def get_by_id(self, task_id: str) -> TodoItem | None:
        if self._list is None:
            return None
        for item in self._list.items:
            if item.id == task_id:
                return replace(item)
        return None

    def get_by_status(self, status: TodoStatus | str) -> list[TodoItem]:
        if self._list is None:
            return []
        wanted = TodoStatus(status)
        return [replace(item) for item in self._list.items if item.status == wanted]

    def get_summary(self) -> TodoSummary | None:
        if self._list is None:
            return None
        summary = TodoSummary(total=len(self._list.items))
        for item in self._list.items:
            if item.status == TodoStatus.PENDING:
                summary.pending += 1
            elif item.status == TodoStatus.IN_PROGRESS:
                summary.in_progress += 1
            elif item.status == TodoStatus.COMPLETED:
                summary.completed += 1
            elif item.status == TodoStatus.BLOCKED:
                summary.blocked += 1
        return summary

    def _broadcast(self) -> None:
        if self._broadcaster is None or self._list is None:
            return
        try:
            self._broadcaster(_copy_list(self._list))
        except Exception:
            logger.exception("Task list broadcaster failed")


def items_from_tool_input(
    todos: Any,
    clock: Callable[[], datetime] | None = None,
) -> list[TodoItem]:
    """Build items from a TodoWrite tool input's ``todos`` array.

    All items share one timestamp and get fresh ids. Entries without
    content are skipped; unknown statuses fall back to pending.
    """
    if not isinstance(todos, list):
        return []
    now = (clock or _utc_now)()
    stamp = _iso(now)
    items: list[TodoItem] = []
    for index, raw in enumerate(todos):
        if not isinstance(raw, dict):
            continue
        content = str(raw.get("content") or "").strip()
        if not content:
            logger.debug("Skipping task entry %d without content", index)
            continue
        try:
            status = TodoStatus(raw.get("status") or TodoStatus.PENDING.value)
        except ValueError:
            status = TodoStatus.PENDING
        blocked_reason = None
        if status == TodoStatus.BLOCKED:
            blocked_reason = str(raw.get("blockedReason") or raw.get("activeForm") or "Blocked")
        items.append(TodoItem(
            id=_todo_id(now, index),
            content=content,
            status=status,
            created_at=stamp,
            updated_at=stamp,
            completed_at=stamp if status == TodoStatus.COMPLETED else None,
            blocked_reason=blocked_reason,
        ))
    return items
