"""Agent package - chat orchestration over the agent runtime."""
from __future__ import annotations

__all__ = [
    "AgentRuntime",
    "ChatOrchestrator",
    "ClaudeAgentRuntime",
    "OrchestratorState",
    "RequestContext",
    "RunOptions",
]

from cowork.agent.chat import ChatOrchestrator, OrchestratorState
from cowork.agent.context import RequestContext
from cowork.agent.runtime import AgentRuntime, ClaudeAgentRuntime, RunOptions
