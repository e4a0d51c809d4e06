"""Bridge package - the host side of the UI process boundary.

Holds the channel catalog and message envelopes, the push channel that
fans messages out to UI subscribers, and the AgentBridge that admits
commands and correlates questions with answers.
"""
from __future__ import annotations

__all__ = [
    "AgentBridge",
    "Channel",
    "CommandHandler",
    "PushChannel",
]

from cowork.bridge.bridge import AgentBridge
from cowork.bridge.commands import CommandHandler
from cowork.bridge.messages import Channel
from cowork.bridge.push import PushChannel
