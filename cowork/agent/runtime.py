"""Agent runtime adapter.

The orchestrator only depends on the ``AgentRuntime`` protocol; the
production implementation wraps ``claude_agent_sdk.query``. Messages are
passed through untouched and classified by the orchestrator.
"""
from __future__ import annotations

import importlib.util
import logging
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from cowork.errors import RuntimeUnavailableError

logger = logging.getLogger(__name__)

# Signature of claude_agent_sdk's can_use_tool callback:
# async def callback(tool_name, tool_input, context) -> PermissionResult
PermissionHandler = Callable[[str, dict[str, Any], Any], Awaitable[Any]]

QUESTION_TOOL = "AskUserQuestion"


@dataclass
class RunOptions:
    system_prompt: str
    cwd: str
    model: str
    allowed_tools: list[str] = field(default_factory=list)
    resume: str | None = None
    can_use_tool: PermissionHandler | None = None


class AgentRuntime(Protocol):
    def check(self) -> None:
        """Raise ``RuntimeUnavailableError`` if runs cannot be started."""

    def run(self, prompt: str, options: RunOptions) -> AsyncIterator[Any]:
        """Start one run and yield its messages in order."""


class ClaudeAgentRuntime:
    """Runs prompts through the Claude Agent SDK."""

    def check(self) -> None:
        if importlib.util.find_spec("claude_agent_sdk") is None:
            raise RuntimeUnavailableError(
                "claude-agent-sdk is not installed; run: pip install claude-agent-sdk"
            )

    async def run(self, prompt: str, options: RunOptions) -> AsyncIterator[Any]:
        from claude_agent_sdk import ClaudeAgentOptions, query

        # Tools in allowed_tools bypass can_use_tool entirely, so the
        # question tool must stay off the list to reach the UI.
        allowed = [t for t in options.allowed_tools if t != QUESTION_TOOL]
        options_kwargs: dict[str, Any] = {
            "system_prompt": options.system_prompt,
            "allowed_tools": allowed,
            "cwd": options.cwd,
            "model": options.model,
            "permission_mode": "default",
            "include_partial_messages": False,
        }
        if options.resume:
            options_kwargs["resume"] = options.resume
        if options.can_use_tool is not None:
            options_kwargs["can_use_tool"] = options.can_use_tool

        # A leftover CLAUDECODE env var makes the CLI refuse to start
        # as a nested session.
        os.environ.pop("CLAUDECODE", None)
        logger.info(
            "Starting query model=%s tools=%d resume=%s cwd=%s",
            options.model,
            len(allowed),
            (options.resume or "-")[:8],
            options.cwd,
        )
        sdk_options = ClaudeAgentOptions(**options_kwargs)

        # can_use_tool requires streaming mode, i.e. an AsyncIterable prompt.
        async def _prompt_stream():
            yield {
                "type": "user",
                "message": {"role": "user", "content": prompt},
            }

        async for message in query(prompt=_prompt_stream(), options=sdk_options):
            yield message
