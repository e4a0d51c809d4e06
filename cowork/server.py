"""HTTP + SSE server exposing the Bridge to the desktop UI process.

Commands arrive as JSON POSTs; pushes leave over a single SSE stream whose
``event:`` field is the channel name. On startup the listening port is
written to stdout as ``{"port": N}`` for the launching process.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
import uuid
from typing import Any

from aiohttp import web

from cowork.agent.chat import ChatOrchestrator
from cowork.agent.runtime import AgentRuntime, ClaudeAgentRuntime
from cowork.bridge.bridge import AgentBridge
from cowork.bridge.messages import (
    Channel,
    parse_answer_request,
    parse_init_request,
    parse_send_message_request,
)
from cowork.bridge.push import PushChannel
from cowork.config import HostConfig
from cowork.errors import ErrorCode, InvalidMessageError

logger = logging.getLogger(__name__)


def _invalid(exc: InvalidMessageError) -> web.Response:
    return web.json_response(
        {"error": str(exc), "code": ErrorCode.INVALID_MESSAGE.value},
        status=400,
    )


async def _read_json(request: web.Request, channel: Channel) -> Any:
    if not request.can_read_body:
        return {}
    try:
        return await request.json()
    except ValueError as exc:
        raise InvalidMessageError(channel.value, f"body is not valid JSON ({exc})") from exc


class CoworkServer:
    """HTTP server wiring the push channel, bridge and orchestrator together."""

    def __init__(
        self,
        config: HostConfig | None = None,
        runtime: AgentRuntime | None = None,
    ) -> None:
        self._config = config or HostConfig()
        self._host = self._config.host
        self._port = self._config.port
        self.push = PushChannel()
        self.bridge = AgentBridge(self.push, self._config)
        self.orchestrator = ChatOrchestrator(
            self.bridge, runtime or ClaudeAgentRuntime(), self._config,
        )
        self.bridge.attach(self.orchestrator)
        self._started_at = time.time()
        self._app = web.Application(middlewares=[self._request_logging_middleware])
        self._setup_routes()

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def port(self) -> int:
        return self._port

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = request.headers.get("x-cowork-request-id", str(uuid.uuid4())[:8])
        request["req_id"] = req_id
        start = time.monotonic()
        logger.info("HTTP %s %s req=%s", request.method, request.path_qs, req_id)
        try:
            response = await handler(request)
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception(
                "HTTP %s %s req=%s failed duration_ms=%.1f",
                request.method, request.path_qs, req_id, elapsed_ms,
            )
            raise
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "HTTP %s %s req=%s status=%s duration_ms=%.1f",
            request.method, request.path_qs, req_id,
            getattr(response, "status", "?"), elapsed_ms,
        )
        return response

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_get("/health", self._handle_health)
        r.add_get("/events", self._handle_sse)
        r.add_post("/agent/init", self._handle_init)
        r.add_get("/agent/status", self._handle_status)
        r.add_post("/agent/send-message", self._handle_send_message)
        r.add_post("/agent/stop", self._handle_stop)
        r.add_post("/agent/answer", self._handle_answer)
        r.add_get("/agent/todos", self._handle_todos)
        r.add_get("/agent/tools", self._handle_tools)

    # ── Lifecycle ──

    async def start(self) -> None:
        """Start the server, print the port to stdout, and serve until cancelled."""
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        await site.start()

        actual_port = self._resolve_port(runner)
        if actual_port is None:
            raise RuntimeError("Cowork host started but no listening socket was reported.")
        self._port = actual_port

        sys.stdout.write(json.dumps({"port": actual_port}) + "\n")
        sys.stdout.flush()
        logger.info("Cowork host listening on %s:%d", self._host, actual_port)

        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            logger.info("Server shutting down")
        finally:
            await self.shutdown()
            await runner.cleanup()

    async def shutdown(self) -> None:
        await self.orchestrator.cleanup()
        self.bridge.cleanup()
        self.push.close()

    @staticmethod
    def _resolve_port(runner: web.AppRunner) -> int | None:
        for address in runner.addresses or ():
            if isinstance(address, tuple) and len(address) >= 2:
                return int(address[1])
        return None

    # ── Handlers ──

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "pid": os.getpid(),
            "uptime_seconds": round(max(0.0, time.time() - self._started_at), 3),
            "sse_clients": self.push.subscriber_count,
        })

    async def _handle_sse(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse(
            status=200,
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
            },
        )
        await response.prepare(request)

        queue = self.push.subscribe()
        logger.info("SSE client connected req=%s", request.get("req_id", "unknown"))
        try:
            status = self.bridge.status().to_dict()
            await response.write(f"event: connected\ndata: {json.dumps(status)}\n\n".encode())
            async for msg in self.push.consume(queue):
                try:
                    if msg is None:
                        await response.write(b": keepalive\n\n")
                        continue
                    data = json.dumps(msg.data)
                    await response.write(f"event: {msg.channel}\ndata: {data}\n\n".encode())
                except ConnectionResetError:
                    break
        finally:
            self.push.unsubscribe(queue)
            logger.info("SSE client disconnected req=%s", request.get("req_id", "unknown"))
        return response

    async def _handle_init(self, request: web.Request) -> web.Response:
        try:
            init = parse_init_request(await _read_json(request, Channel.AGENT_INIT))
        except InvalidMessageError as exc:
            return _invalid(exc)
        result = await self.bridge.init(init)
        return web.json_response(result.to_dict())

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self.bridge.status().to_dict())

    async def _handle_send_message(self, request: web.Request) -> web.Response:
        try:
            message = parse_send_message_request(
                await _read_json(request, Channel.AGENT_SEND_MESSAGE),
            )
        except InvalidMessageError as exc:
            return _invalid(exc)
        return web.json_response(await self.bridge.send_message(message))

    async def _handle_stop(self, request: web.Request) -> web.Response:
        return web.json_response(await self.bridge.stop())

    async def _handle_answer(self, request: web.Request) -> web.Response:
        try:
            answer = parse_answer_request(await _read_json(request, Channel.AGENT_ANSWER))
        except InvalidMessageError as exc:
            return _invalid(exc)
        return web.json_response(self.bridge.answer(answer))

    async def _handle_todos(self, request: web.Request) -> web.Response:
        todo_list = self.orchestrator.todos.get_list()
        summary = self.orchestrator.todos.get_summary()
        return web.json_response({
            "todoList": todo_list.to_dict() if todo_list else None,
            "summary": summary.to_dict() if summary else None,
        })

    async def _handle_tools(self, request: web.Request) -> web.Response:
        executions = self.orchestrator.tool_executions
        return web.json_response({"tools": [e.to_dict() for e in executions]})
