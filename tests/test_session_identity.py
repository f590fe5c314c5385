"""Tests for session id parsing, classification and construction."""

from __future__ import annotations

import pytest

from agentmux.core.session_identity import (
    SessionKind,
    build_moderator_session_id,
    build_participant_session_id,
    extract_tab_id,
    is_ai_output,
    is_housekeeping_session,
    is_terminal_session,
    parse_moderator_session_id,
    parse_participant_session_id,
    remote_base_session_id,
    resolve_session_id,
)

UUID = "550e8400-e29b-41d4-a716-446655440000"
TIMESTAMP = "1702934567890"


class TestParseParticipantSessionId:
    """Participant ids: group-chat-{id}-participant-{name}-{suffix}."""

    @pytest.mark.parametrize(
        "session_id",
        [
            "session-abc123",
            f"group-chat-abc123-moderator-{TIMESTAMP}",
            "",
            "participant-abc123",
        ],
    )
    def test_non_participant_ids_return_none(self, session_id: str):
        """Ids without the participant shape are rejected."""
        assert parse_participant_session_id(session_id) is None

    def test_uuid_suffix(self):
        result = parse_participant_session_id(f"group-chat-abc123-participant-Claude-{UUID}")
        assert result is not None
        assert result.group_chat_id == "abc123"
        assert result.participant_name == "Claude"

    def test_hyphenated_name_with_uuid(self):
        """Hyphens inside the participant name are preserved."""
        result = parse_participant_session_id(
            f"group-chat-abc123-participant-OpenCode-Ollama-{UUID}"
        )
        assert result.participant_name == "OpenCode-Ollama"

    def test_uppercase_uuid(self):
        result = parse_participant_session_id(
            f"group-chat-abc123-participant-Claude-{UUID.upper()}"
        )
        assert result.group_chat_id == "abc123"
        assert result.participant_name == "Claude"

    def test_hyphenated_group_chat_id(self):
        result = parse_participant_session_id(
            f"group-chat-my-complex-chat-id-participant-Agent-{UUID}"
        )
        assert result.group_chat_id == "my-complex-chat-id"
        assert result.participant_name == "Agent"

    def test_timestamp_suffix(self):
        result = parse_participant_session_id(
            f"group-chat-abc123-participant-OpenCode-Ollama-{TIMESTAMP}"
        )
        assert result.group_chat_id == "abc123"
        assert result.participant_name == "OpenCode-Ollama"

    def test_long_timestamp(self):
        result = parse_participant_session_id(
            "group-chat-abc123-participant-Claude-17029345678901"
        )
        assert result.participant_name == "Claude"

    def test_legacy_short_numeric_suffix(self):
        result = parse_participant_session_id("group-chat-abc123-participant-Claude-123")
        assert result.group_chat_id == "abc123"
        assert result.participant_name == "Claude"

    @pytest.mark.parametrize(
        "name",
        ["Agent2", "A", "My_Agent"],
    )
    def test_unusual_names(self, name: str):
        result = parse_participant_session_id(
            f"group-chat-abc123-participant-{name}-{TIMESTAMP}"
        )
        assert result.participant_name == name

    def test_single_character_group_chat_id(self):
        result = parse_participant_session_id(f"group-chat-x-participant-Claude-{TIMESTAMP}")
        assert result.group_chat_id == "x"

    def test_uuid_preferred_over_numeric_tail(self):
        """A UUID ending in digits is not split as a timestamp suffix."""
        uuid_with_digit_tail = "550e8400-e29b-41d4-a716-123456789012"
        result = parse_participant_session_id(
            f"group-chat-abc123-participant-Claude-{uuid_with_digit_tail}"
        )
        assert result.participant_name == "Claude"


class TestParseModeratorSessionId:
    """Moderator ids: group-chat-{id}-moderator[-synthesis]-{suffix}."""

    def test_timestamp_suffix(self):
        result = parse_moderator_session_id(f"group-chat-abc123-moderator-{TIMESTAMP}")
        assert result.group_chat_id == "abc123"
        assert result.is_synthesis is False

    def test_uuid_suffix(self):
        result = parse_moderator_session_id(f"group-chat-team-chat-moderator-{UUID}")
        assert result.group_chat_id == "team-chat"

    def test_synthesis(self):
        result = parse_moderator_session_id(f"group-chat-abc123-moderator-synthesis-{UUID}")
        assert result.group_chat_id == "abc123"
        assert result.is_synthesis is True

    def test_regular_id_returns_none(self):
        assert parse_moderator_session_id("session-moderator") is None


class TestResolveSessionId:
    """Classification policy."""

    def test_participant(self):
        identity = resolve_session_id(f"group-chat-abc-participant-Claude-{UUID}")
        assert identity.kind == SessionKind.GROUP_CHAT_PARTICIPANT
        assert identity.group_chat_id == "abc"
        assert identity.participant_name == "Claude"
        assert identity.is_group_chat

    def test_participant_checked_before_moderator(self):
        """A participant literally named 'moderator' is still a participant."""
        identity = resolve_session_id(f"group-chat-abc-participant-moderator-{UUID}")
        assert identity.kind == SessionKind.GROUP_CHAT_PARTICIPANT
        assert identity.participant_name == "moderator"

    def test_moderator(self):
        identity = resolve_session_id(f"group-chat-abc-moderator-{TIMESTAMP}")
        assert identity.kind == SessionKind.GROUP_CHAT_MODERATOR
        assert identity.group_chat_id == "abc"

    def test_terminal(self):
        identity = resolve_session_id("sess-42-terminal")
        assert identity.kind == SessionKind.TERMINAL
        assert not identity.is_group_chat

    def test_regular(self):
        identity = resolve_session_id("sess-42-ai-tab1")
        assert identity.kind == SessionKind.REGULAR
        assert identity.group_chat_id is None

    def test_idempotent(self):
        session_id = f"group-chat-abc-participant-Claude-{UUID}"
        assert resolve_session_id(session_id) == resolve_session_id(session_id)


class TestBuilders:
    """Built ids always resolve back to their parts."""

    def test_participant_round_trip(self):
        session_id = build_participant_session_id("chat-1", "OpenCode-Ollama")
        info = parse_participant_session_id(session_id)
        assert info.group_chat_id == "chat-1"
        assert info.participant_name == "OpenCode-Ollama"

    def test_participant_with_explicit_suffix(self):
        session_id = build_participant_session_id("chat", "Claude", suffix=TIMESTAMP)
        assert session_id == f"group-chat-chat-participant-Claude-{TIMESTAMP}"

    def test_moderator_synthesis_round_trip(self):
        session_id = build_moderator_session_id("chat-1", synthesis=True)
        identity = resolve_session_id(session_id)
        assert identity.kind == SessionKind.GROUP_CHAT_MODERATOR
        assert identity.group_chat_id == "chat-1"
        assert identity.is_synthesis is True

    def test_unique_suffixes(self):
        assert build_moderator_session_id("c") != build_moderator_session_id("c")


class TestRemoteRoutingHelpers:
    """Helpers used when broadcasting output to remote clients."""

    def test_base_id_strips_ai_suffix(self):
        assert remote_base_session_id("sess-1-ai-tab-7") == "sess-1"

    def test_base_id_strips_terminal_suffix(self):
        assert remote_base_session_id("sess-1-terminal") == "sess-1"

    def test_tab_id(self):
        assert extract_tab_id("sess-1-ai-tab-7") == "tab-7"
        assert extract_tab_id("sess-1") is None

    def test_ai_output(self):
        assert is_ai_output("sess-1-ai-tab")
        assert not is_ai_output("sess-1-terminal")

    def test_terminal(self):
        assert is_terminal_session("sess-1-terminal")
        assert not is_terminal_session("sess-1-terminal-2")

    @pytest.mark.parametrize(
        "session_id,expected",
        [
            ("sess-1-batch-1702934567890", True),
            ("sess-1-synopsis-1702934567890", True),
            ("sess-1-ai-tab", False),
        ],
    )
    def test_housekeeping(self, session_id: str, expected: bool):
        assert is_housekeeping_session(session_id) is expected
