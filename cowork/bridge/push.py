"""Fan-out push channel from the host to connected UI subscribers.

The Bridge is the only writer. Each subscriber (one per open SSE stream)
owns a bounded queue; a full queue drops the message instead of stalling
the agent run.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class PushedMessage:
    channel: str
    data: dict[str, Any]


class PushChannel:
    """Many-readers/one-writer queue fan-out."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._maxsize = maxsize
        self._subscribers: list[asyncio.Queue[PushedMessage]] = []
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[PushedMessage]:
        queue: asyncio.Queue[PushedMessage] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.append(queue)
        logger.info("Push subscriber added active=%d", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[PushedMessage]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)
        logger.info("Push subscriber removed active=%d", len(self._subscribers))

    def publish(self, channel: str, data: dict[str, Any]) -> None:
        """Queue a message for every subscriber without blocking."""
        if self._closed:
            return
        if not self._subscribers:
            logger.debug("No push subscribers, discarding %s", channel)
            return
        msg = PushedMessage(channel=channel, data=data)
        for queue in self._subscribers:
            try:
                queue.put_nowait(msg)
            except asyncio.QueueFull:
                logger.warning(
                    "Push queue full, dropping %s (queue size: %d)",
                    channel,
                    queue.qsize(),
                )

    async def consume(
        self,
        queue: asyncio.Queue[PushedMessage],
        keepalive_seconds: float = 30.0,
    ) -> AsyncIterator[PushedMessage | None]:
        """Yield messages for one subscriber; ``None`` marks a keepalive tick."""
        while not self._closed:
            try:
                msg = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield None
                continue
            if msg is _CLOSED:
                return
            yield msg

    def close(self) -> None:
        """Stop all consumer loops permanently."""
        self._closed = True
        for queue in self._subscribers:
            try:
                queue.put_nowait(_CLOSED)
            except asyncio.QueueFull:
                logger.debug("Push queue full on close; consumer exits on its next read")


# Wakes consumers blocked on an empty queue when the channel closes.
_CLOSED = PushedMessage(channel="", data={})
