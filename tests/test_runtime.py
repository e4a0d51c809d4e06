from __future__ import annotations

import os
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from cowork.agent.runtime import ClaudeAgentRuntime, RunOptions
from cowork.errors import RuntimeUnavailableError


def _mock_sdk(captured: dict) -> MagicMock:
    async def fake_query(prompt, options):
        captured["prompt"] = [item async for item in prompt]
        captured["options"] = options
        yield SimpleNamespace(subtype="init", data={"session_id": "s-1"})
        yield SimpleNamespace(result="ok", is_error=False)

    mock_sdk = MagicMock()
    mock_sdk.query = fake_query
    mock_sdk.ClaudeAgentOptions = lambda **kwargs: SimpleNamespace(**kwargs)
    return mock_sdk


async def _noop_permission(tool_name, tool_input, context):
    return None


@pytest.mark.asyncio
async def test_run_streams_prompt_and_keeps_question_tool_off_allowed_list() -> None:
    captured: dict = {}
    options = RunOptions(
        system_prompt="be helpful",
        cwd="/ws",
        model="model-z",
        allowed_tools=["Read", "AskUserQuestion", "TodoWrite"],
        resume="sess-123",
        can_use_tool=_noop_permission,
    )
    with patch.dict(sys.modules, {"claude_agent_sdk": _mock_sdk(captured)}), \
            patch.dict(os.environ, {"CLAUDECODE": "1"}):
        messages = [m async for m in ClaudeAgentRuntime().run("hello", options)]
        assert "CLAUDECODE" not in os.environ

    assert [getattr(m, "result", None) for m in messages] == [None, "ok"]
    assert captured["prompt"] == [
        {"type": "user", "message": {"role": "user", "content": "hello"}},
    ]
    sdk_options = captured["options"]
    assert sdk_options.allowed_tools == ["Read", "TodoWrite"]
    assert sdk_options.resume == "sess-123"
    assert sdk_options.can_use_tool is _noop_permission
    assert sdk_options.permission_mode == "default"
    assert sdk_options.cwd == "/ws"
    assert sdk_options.model == "model-z"
    assert options.allowed_tools == ["Read", "AskUserQuestion", "TodoWrite"]


@pytest.mark.asyncio
async def test_run_without_resume_omits_it() -> None:
    captured: dict = {}
    options = RunOptions(system_prompt="p", cwd="/ws", model="m")
    with patch.dict(sys.modules, {"claude_agent_sdk": _mock_sdk(captured)}):
        [m async for m in ClaudeAgentRuntime().run("hi", options)]
    assert not hasattr(captured["options"], "resume")
    assert not hasattr(captured["options"], "can_use_tool")


def test_check_reports_missing_sdk() -> None:
    with patch("importlib.util.find_spec", return_value=None):
        with pytest.raises(RuntimeUnavailableError, match="claude-agent-sdk"):
            ClaudeAgentRuntime().check()

    with patch("importlib.util.find_spec", return_value=object()):
        ClaudeAgentRuntime().check()
