from __future__ import annotations

import asyncio

import pytest

from cowork.errors import (
    ErrorCode,
    InvalidTransitionError,
    classify_exception,
    is_recoverable,
)


def test_recoverable_codes() -> None:
    for code in (
        ErrorCode.API_ERROR,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.UNKNOWN,
        ErrorCode.AGENT_BUSY,
        ErrorCode.TOOL_EXECUTION_FAILED,
        ErrorCode.INVALID_MESSAGE,
    ):
        assert is_recoverable(code), code

    for code in (
        ErrorCode.AGENT_NOT_INITIALIZED,
        ErrorCode.INITIALIZATION_FAILED,
        ErrorCode.API_KEY_MISSING,
        ErrorCode.WORKSPACE_ERROR,
    ):
        assert not is_recoverable(code), code


@pytest.mark.parametrize("exc, expected", [
    (asyncio.TimeoutError(), ErrorCode.TIMEOUT),
    (ConnectionResetError("peer reset"), ErrorCode.NETWORK_ERROR),
    (RuntimeError("Request timed out after 60s"), ErrorCode.TIMEOUT),
    (RuntimeError("fetch failed"), ErrorCode.NETWORK_ERROR),
    (RuntimeError("getaddrinfo ENOTFOUND api.example.com"), ErrorCode.NETWORK_ERROR),
    (RuntimeError("API Error: 401 invalid x-api-key"), ErrorCode.API_ERROR),
    (RuntimeError("429 rate limit exceeded"), ErrorCode.API_ERROR),
    (RuntimeError("Overloaded"), ErrorCode.API_ERROR),
    (ValueError("something odd happened"), ErrorCode.UNKNOWN),
    (RuntimeError("fetch timeout after 30s"), ErrorCode.NETWORK_ERROR),
    (RuntimeError("Expected capital letter in name"), ErrorCode.UNKNOWN),
    (RuntimeError("rapid therapy"), ErrorCode.UNKNOWN),
    (RuntimeError("Anthropic API returned 500"), ErrorCode.API_ERROR),
])
def test_classify_exception(exc, expected) -> None:
    assert classify_exception(exc) == expected


def test_invalid_transition_message_lists_allowed() -> None:
    err = InvalidTransitionError("pending", "completed", ["in_progress", "blocked"])
    assert "pending -> completed" in str(err)
    assert "in_progress, blocked" in str(err)
