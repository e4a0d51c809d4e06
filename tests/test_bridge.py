from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import pytest

from cowork.bridge.bridge import AgentBridge
from cowork.bridge.commands import AnswerCommand, InitCommand, MessageCommand
from cowork.bridge.messages import (
    AnswerRequest,
    InitRequest,
    ProcessingStatus,
    QuestionOption,
    SendMessageRequest,
    TokenUsage,
)
from cowork.bridge.push import PushChannel
from cowork.config import HostConfig
from cowork.errors import ErrorCode, QuestionAbandoned


class _RecordingHandler:
    """Command handler that records calls and never starts a run."""

    def __init__(self, bridge: AgentBridge, init_error: str | None = None) -> None:
        self.bridge = bridge
        self.init_error = init_error
        self.inits: list[InitCommand] = []
        self.messages: list[MessageCommand] = []
        self.answers: list[AnswerCommand] = []
        self.stops = 0

    async def on_init(self, command: InitCommand) -> None:
        self.inits.append(command)
        if self.init_error:
            self.bridge.set_initialized(False, self.init_error)

    async def on_message(self, command: MessageCommand) -> None:
        self.messages.append(command)

    async def on_stop(self) -> None:
        self.stops += 1

    def on_answer(self, command: AnswerCommand) -> None:
        self.answers.append(command)


def _build(config: HostConfig | None = None, init_error: str | None = None):
    push = PushChannel()
    queue = push.subscribe()
    bridge = AgentBridge(push, config or HostConfig())
    handler = _RecordingHandler(bridge, init_error)
    bridge.attach(handler)
    return bridge, handler, queue


def _drain(queue) -> list:
    out = []
    while not queue.empty():
        out.append(queue.get_nowait())
    return out


def _channels(pushed) -> list[str]:
    return [m.channel for m in pushed]


@pytest.mark.asyncio
async def test_init_uses_request_workspace_and_default_model() -> None:
    bridge, handler, _ = _build(HostConfig(default_model="model-x"))
    resp = await bridge.init(InitRequest(id="msg_init", workspace_path="/ws"))

    assert resp.success is True
    assert resp.id == "msg_init"
    assert bridge.initialized
    assert bridge.status().workspace_path == "/ws"
    assert bridge.status().model == "model-x"
    assert handler.inits[0].workspace_path == "/ws"
    assert handler.inits[0].model == "model-x"


@pytest.mark.asyncio
async def test_init_creates_default_workspace() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        default = Path(tmpdir) / "nested" / "workspace"
        bridge, _, _ = _build(HostConfig(default_workspace=str(default)))

        resp = await bridge.init(InitRequest())
        assert resp.success is True
        assert default.is_dir()
        assert bridge.status().workspace_path == str(default)

        # Idempotent on a second init.
        resp = await bridge.init(InitRequest())
        assert resp.success is True


@pytest.mark.asyncio
async def test_init_fails_when_default_workspace_cannot_be_created() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        blocker = Path(tmpdir) / "blocker"
        blocker.write_text("not a directory")
        bridge, handler, _ = _build(HostConfig(default_workspace=str(blocker / "ws")))

        resp = await bridge.init(InitRequest())
        assert resp.success is False
        assert resp.error
        assert not bridge.initialized
        assert handler.inits == []


@pytest.mark.asyncio
async def test_init_revised_when_handler_reports_failure() -> None:
    bridge, _, _ = _build(init_error="runtime missing")
    resp = await bridge.init(InitRequest(workspace_path="/ws"))
    assert resp.success is False
    assert resp.error == "runtime missing"
    assert bridge.status().initialized is False


@pytest.mark.asyncio
async def test_send_message_before_init_is_rejected() -> None:
    bridge, handler, queue = _build()
    result = await bridge.send_message(SendMessageRequest(id="req-1", content="hi"))

    assert result == {"requestId": "req-1"}
    pushed = _drain(queue)
    assert _channels(pushed) == ["agent:error"]
    assert pushed[0].data["code"] == ErrorCode.AGENT_NOT_INITIALIZED.value
    assert pushed[0].data["requestId"] == "req-1"
    assert pushed[0].data["recoverable"] is False
    assert handler.messages == []
    assert not bridge.running


@pytest.mark.asyncio
async def test_accepted_message_marks_running_and_pushes_processing() -> None:
    bridge, handler, queue = _build()
    await bridge.init(InitRequest(workspace_path="/ws"))
    await bridge.send_message(SendMessageRequest(id="req-1", content="hi"))

    assert bridge.running
    assert bridge.active_request_id == "req-1"
    assert [m.content for m in handler.messages] == ["hi"]
    pushed = _drain(queue)
    assert _channels(pushed) == ["agent:status-update"]
    assert pushed[0].data["status"] == "processing"
    assert pushed[0].data["requestId"] == "req-1"


@pytest.mark.asyncio
async def test_busy_rejection_leaves_in_flight_request_untouched() -> None:
    bridge, handler, queue = _build()
    await bridge.init(InitRequest(workspace_path="/ws"))
    await bridge.send_message(SendMessageRequest(id="req-1", content="first"))
    _drain(queue)

    await bridge.send_message(SendMessageRequest(id="req-2", content="second"))

    pushed = _drain(queue)
    assert _channels(pushed) == ["agent:error"]
    assert pushed[0].data["code"] == "AGENT_BUSY"
    assert pushed[0].data["requestId"] == "req-2"
    assert pushed[0].data["recoverable"] is True
    assert bridge.active_request_id == "req-1"
    assert len(handler.messages) == 1


@pytest.mark.asyncio
async def test_mark_complete_ignores_other_request_ids() -> None:
    bridge, _, _ = _build()
    await bridge.init(InitRequest(workspace_path="/ws"))
    await bridge.send_message(SendMessageRequest(id="req-1", content="hi"))

    bridge.mark_complete("req-stale")
    assert bridge.running

    bridge.mark_complete("req-1")
    assert not bridge.running


@pytest.mark.asyncio
async def test_message_complete_pushes_idle_and_clears_running() -> None:
    bridge, _, queue = _build()
    await bridge.init(InitRequest(workspace_path="/ws"))
    await bridge.send_message(SendMessageRequest(id="req-1", content="hi"))
    _drain(queue)

    bridge.send_message_chunk("req-1", "Hel")
    bridge.send_message_chunk("req-1", "lo")
    bridge.send_message_complete("req-1", "Hello", TokenUsage(input_tokens=3, output_tokens=2))

    pushed = _drain(queue)
    assert _channels(pushed) == [
        "agent:message-chunk",
        "agent:message-chunk",
        "agent:message-complete",
        "agent:status-update",
    ]
    assert pushed[2].data["content"] == "Hello"
    assert pushed[2].data["usage"] == {"inputTokens": 3, "outputTokens": 2}
    assert pushed[3].data["status"] == "idle"
    assert not bridge.running


@pytest.mark.asyncio
async def test_non_recoverable_error_forces_complete() -> None:
    bridge, _, queue = _build()
    await bridge.init(InitRequest(workspace_path="/ws"))
    await bridge.send_message(SendMessageRequest(id="req-1", content="hi"))

    bridge.send_error("req-1", ErrorCode.API_ERROR, "transient")
    assert bridge.running

    bridge.send_error("req-1", ErrorCode.WORKSPACE_ERROR, "workspace vanished")
    assert not bridge.running
    errors = [m for m in _drain(queue) if m.channel == "agent:error"]
    assert [e.data["recoverable"] for e in errors] == [True, False]


@pytest.mark.asyncio
async def test_question_round_trip() -> None:
    bridge, handler, queue = _build()
    ask = asyncio.create_task(bridge.ask_question(
        "req-1", "Which format?", [QuestionOption(label="PDF", value="pdf")], False,
    ))
    await asyncio.sleep(0)

    [question_id] = bridge.pending_question_ids
    pushed = _drain(queue)
    assert _channels(pushed) == ["agent:question"]
    assert pushed[0].data["questionId"] == question_id
    assert pushed[0].data["requestId"] == "req-1"
    assert pushed[0].data["options"] == [{"label": "PDF", "value": "pdf"}]
    assert pushed[0].data["multiSelect"] is False

    result = bridge.answer(AnswerRequest(
        question_id=question_id, request_id="req-1", selected_values=["pdf"],
    ))
    assert result == {"success": True}
    assert await ask == ["pdf"]
    assert bridge.pending_question_ids == []
    assert handler.answers[0].selected_values == ["pdf"]

    # A second answer for the same id is a no-op.
    again = bridge.answer(AnswerRequest(question_id=question_id, selected_values=["x"]))
    assert again == {"success": False}
    assert len(handler.answers) == 1


@pytest.mark.asyncio
async def test_answer_for_unknown_question_reports_failure() -> None:
    bridge, handler, queue = _build()
    result = bridge.answer(AnswerRequest(question_id="nope", selected_values=["a"]))
    assert result == {"success": False}
    assert handler.answers == []
    assert _drain(queue) == []


@pytest.mark.asyncio
async def test_stop_abandons_pending_questions() -> None:
    bridge, handler, _ = _build()
    await bridge.init(InitRequest(workspace_path="/ws"))
    await bridge.send_message(SendMessageRequest(id="req-1", content="hi"))
    ask = asyncio.create_task(bridge.ask_question("req-1", "Continue?", [], False))
    await asyncio.sleep(0)
    [question_id] = bridge.pending_question_ids

    assert await bridge.stop() == {"success": True}

    with pytest.raises(QuestionAbandoned):
        await ask
    assert handler.stops == 1
    assert not bridge.running
    assert bridge.pending_question_ids == []
    assert bridge.answer(AnswerRequest(question_id=question_id, selected_values=["y"])) == {
        "success": False,
    }


@pytest.mark.asyncio
async def test_question_timeout_returns_empty_answer() -> None:
    bridge, _, _ = _build(HostConfig(user_question_timeout_seconds=0.01))
    values = await bridge.ask_question("req-1", "Anyone there?", [], False)
    assert values == []
    assert bridge.pending_question_ids == []


@pytest.mark.asyncio
async def test_status_update_serializes_enum() -> None:
    bridge, _, queue = _build()
    bridge.send_status_update("req-1", ProcessingStatus.THINKING, "Thinking...")
    [pushed] = _drain(queue)
    assert pushed.data["status"] == "thinking"


@pytest.mark.asyncio
async def test_cleanup_resets_state() -> None:
    bridge, _, _ = _build()
    await bridge.init(InitRequest(workspace_path="/ws"))
    await bridge.send_message(SendMessageRequest(id="req-1", content="hi"))
    bridge.cleanup()
    status = bridge.status()
    assert status.initialized is False
    assert status.is_running is False
    assert status.workspace_path is None
