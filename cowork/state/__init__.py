"""State package - task list and artifact tracking for one session."""
from __future__ import annotations

__all__ = [
    "Artifact",
    "ArtifactTracker",
    "TodoItem",
    "TodoList",
    "TodoStatus",
    "TodoStore",
    "TodoSummary",
    "items_from_tool_input",
]

from cowork.state.artifacts import Artifact, ArtifactTracker
from cowork.state.todos import (
    TodoItem,
    TodoList,
    TodoStatus,
    TodoStore,
    TodoSummary,
    items_from_tool_input,
)
