"""Command interface between the Bridge and the chat orchestrator.

The Bridge validates and admits UI commands, then calls exactly one method
on its attached handler per command.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from cowork.bridge.messages import FileAttachment


@dataclass
class InitCommand:
    request_id: str
    workspace_path: str
    model: str
    additional_instructions: str | None = None


@dataclass
class MessageCommand:
    request_id: str
    content: str
    attachments: list[FileAttachment] = field(default_factory=list)


@dataclass
class AnswerCommand:
    question_id: str
    request_id: str
    selected_values: list[str] = field(default_factory=list)


class CommandHandler(Protocol):
    async def on_init(self, command: InitCommand) -> None:
        """Prepare for a new session. Report failure via ``set_initialized``."""

    async def on_message(self, command: MessageCommand) -> None:
        """Schedule one agent run and return without waiting for it."""

    async def on_stop(self) -> None:
        """Abort the in-flight run, if any."""

    def on_answer(self, command: AnswerCommand) -> None:
        """Observe an answered question (the Bridge already resolved it)."""
