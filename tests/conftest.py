# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the agentmux test suite.

This module provides:
- Sample JSONL output for each supported agent family
- Supervisor configuration tuned for fast tests
- Mocked collaborators for the process listeners
- A temporary stats database

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
"""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentmux.core.config import SupervisorConfig
from agentmux.groupchat.listeners import ListenerDependencies
from agentmux.groupchat.output_buffer import GroupChatOutputBuffer
from agentmux.metrics.stats_store import StatsDatabase

# =============================================================================
# Agent Output Samples
# =============================================================================


@pytest.fixture
def codex_turn_lines() -> list[str]:
    """One complete Codex turn as emitted by ``codex exec --json``."""
    messages = [
        {"type": "thread.started", "thread_id": "019a-thread-abc"},
        {"type": "turn.started"},
        {"type": "item.completed", "item": {"id": "i0", "type": "reasoning", "text": "Looking at the tests"}},
        {"type": "item.completed", "item": {"id": "i1", "type": "tool_call", "tool": "shell", "args": {"command": ["ls"]}}},
        {"type": "item.completed", "item": {"id": "i2", "type": "tool_result", "output": "README.md\n"}},
        {"type": "item.completed", "item": {"id": "i3", "type": "agent_message", "text": "All tests pass."}},
        {
            "type": "turn.completed",
            "usage": {
                "input_tokens": 1200,
                "cached_input_tokens": 800,
                "output_tokens": 150,
                "reasoning_output_tokens": 50,
            },
        },
    ]
    return [json.dumps(m) for m in messages]


@pytest.fixture
def claude_turn_lines() -> list[str]:
    """One complete Claude Code stream-json turn."""
    messages = [
        {"type": "system", "subtype": "init", "session_id": "claude-sess-1", "tools": []},
        {
            "type": "assistant",
            "session_id": "claude-sess-1",
            "message": {"content": [{"type": "text", "text": "Let me check."}]},
        },
        {
            "type": "assistant",
            "session_id": "claude-sess-1",
            "message": {"content": [{"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}}]},
        },
        {
            "type": "user",
            "session_id": "claude-sess-1",
            "message": {"content": [{"type": "tool_result", "tool_use_id": "t1", "content": "README.md"}]},
        },
        {
            "type": "result",
            "subtype": "success",
            "is_error": False,
            "result": "Done.",
            "session_id": "claude-sess-1",
            "total_cost_usd": 0.0123,
            "usage": {"input_tokens": 10, "output_tokens": 20},
            "modelUsage": {
                "claude-sonnet": {
                    "inputTokens": 5000,
                    "outputTokens": 400,
                    "cacheReadInputTokens": 20000,
                    "cacheCreationInputTokens": 1000,
                    "contextWindow": 200000,
                },
                "claude-haiku": {
                    "inputTokens": 300,
                    "outputTokens": 40,
                    "cacheReadInputTokens": 0,
                    "cacheCreationInputTokens": 0,
                    "contextWindow": 200000,
                },
            },
        },
    ]
    return [json.dumps(m) for m in messages]


@pytest.fixture
def opencode_turn_lines() -> list[str]:
    """One complete OpenCode ``run --format json`` turn."""
    messages = [
        {"type": "step_start", "sessionID": "ses_abc", "part": {"type": "step-start"}},
        {"type": "text", "sessionID": "ses_abc", "part": {"type": "text", "text": "Hello"}},
        {
            "type": "tool_use",
            "sessionID": "ses_abc",
            "part": {"tool": "bash", "state": {"status": "completed", "input": {"command": "ls"}, "output": "a.txt"}},
        },
        {"type": "text", "sessionID": "ses_abc", "part": {"type": "text", "text": "World"}},
        {
            "type": "step_finish",
            "sessionID": "ses_abc",
            "part": {
                "reason": "stop",
                "cost": 0.002,
                "tokens": {"input": 900, "output": 60, "reasoning": 10, "cache": {"read": 100, "write": 5}},
            },
        },
    ]
    return [json.dumps(m) for m in messages]


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def fast_config() -> SupervisorConfig:
    """Supervisor config with a short kill grace period and a known shell."""
    return SupervisorConfig(kill_grace_seconds=0.5, default_shell="/bin/sh")


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def group_chat_storage() -> MagicMock:
    """Async group-chat storage with one participant."""
    storage = MagicMock()
    storage.update_participant = AsyncMock()
    storage.update_group_chat = AsyncMock()
    storage.route_moderator_response = AsyncMock()
    storage.route_participant_response = AsyncMock()
    storage.load_group_chat = AsyncMock(
        return_value=SimpleNamespace(participants=[{"name": "Alice"}])
    )
    return storage


@pytest.fixture
def listener_deps(group_chat_storage: MagicMock) -> ListenerDependencies:
    """Listener dependencies with mocked UI, remote and stats collaborators."""
    broadcaster = MagicMock()
    stats_store = MagicMock()
    stats_store.is_ready.return_value = True
    stats_store.insert_query_event.return_value = "evt-1"
    return ListenerDependencies(
        safe_send=MagicMock(),
        get_remote_broadcaster=lambda: broadcaster,
        output_buffer=GroupChatOutputBuffer(),
        group_chat_storage=group_chat_storage,
        group_chat_emitters=MagicMock(),
        get_stats_store=lambda: stats_store,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def stats_db(tmp_path: Path) -> StatsDatabase:
    """Initialized stats database in a temporary directory."""
    db = StatsDatabase(tmp_path / "stats.db")
    db.initialize()
    return db


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests that spawn real processes")
