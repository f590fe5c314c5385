"""Session id parsing and construction.

Composite session ids encode group-chat routing:

    group-chat-{groupChatId}-participant-{participantName}-{suffix}
    group-chat-{groupChatId}-moderator[-synthesis]-{suffix}

where suffix is a UUID, a long numeric timestamp, or (legacy) a short
numeric token, matched in that priority order. Terminal sessions end with
``-terminal``; AI tab sessions carry an ``-ai-{tabId}`` segment.

All construction and inspection of these strings goes through this module.
"""

import re
import uuid
from dataclasses import dataclass
from enum import Enum

_UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"

# Timestamps need at least 13 digits (epoch milliseconds) so that short
# counters fall through to the legacy pattern.
MIN_TIMESTAMP_DIGITS = 13

GROUP_CHAT_PREFIX = "group-chat-"
PARTICIPANT_MARKER = "-participant-"
MODERATOR_MARKER = "-moderator"
TERMINAL_SUFFIX = "-terminal"

REGEX_PARTICIPANT_UUID = re.compile(rf"^group-chat-(.+)-participant-(.+)-({_UUID})$", re.IGNORECASE)
REGEX_PARTICIPANT_TIMESTAMP = re.compile(
    rf"^group-chat-(.+)-participant-(.+)-(\d{{{MIN_TIMESTAMP_DIGITS},}})$"
)
REGEX_PARTICIPANT_FALLBACK = re.compile(r"^group-chat-(.+)-participant-(.+)-(\d+)$")

REGEX_MODERATOR_UUID = re.compile(
    rf"^group-chat-(.+)-moderator(-synthesis)?-({_UUID})$", re.IGNORECASE
)
REGEX_MODERATOR_TIMESTAMP = re.compile(
    rf"^group-chat-(.+)-moderator(-synthesis)?-(\d{{{MIN_TIMESTAMP_DIGITS},}})$"
)
REGEX_MODERATOR_FALLBACK = re.compile(r"^group-chat-(.+)-moderator(-synthesis)?-(\d+)$")

REGEX_AI_SUFFIX = re.compile(r"-ai-.+$")
REGEX_AI_TAB_ID = re.compile(r"-ai-(.+)$")

_PARTICIPANT_PATTERNS = (REGEX_PARTICIPANT_UUID, REGEX_PARTICIPANT_TIMESTAMP, REGEX_PARTICIPANT_FALLBACK)
_MODERATOR_PATTERNS = (REGEX_MODERATOR_UUID, REGEX_MODERATOR_TIMESTAMP, REGEX_MODERATOR_FALLBACK)


class SessionKind(str, Enum):
    """Routing category of a session id."""

    REGULAR = "regular"
    TERMINAL = "terminal"
    GROUP_CHAT_PARTICIPANT = "group_chat_participant"
    GROUP_CHAT_MODERATOR = "group_chat_moderator"


@dataclass(frozen=True)
class SessionIdentity:
    """Decoded form of a session id string."""

    kind: SessionKind
    session_id: str
    group_chat_id: str | None = None
    participant_name: str | None = None
    is_synthesis: bool = False

    @property
    def is_group_chat(self) -> bool:
        return self.kind in (SessionKind.GROUP_CHAT_PARTICIPANT, SessionKind.GROUP_CHAT_MODERATOR)


@dataclass(frozen=True)
class ParticipantSessionInfo:
    group_chat_id: str
    participant_name: str


@dataclass(frozen=True)
class ModeratorSessionInfo:
    group_chat_id: str
    is_synthesis: bool = False


def parse_participant_session_id(session_id: str) -> ParticipantSessionInfo | None:
    """Extract group chat id and participant name from a participant session id.

    Tries UUID, then timestamp, then legacy numeric suffixes. Hyphens inside
    the group chat id and the participant name are preserved.

    Returns:
        ParticipantSessionInfo, or None if the id is not a participant id
    """
    if not session_id or PARTICIPANT_MARKER not in session_id:
        return None

    for pattern in _PARTICIPANT_PATTERNS:
        match = pattern.match(session_id)
        if match:
            return ParticipantSessionInfo(
                group_chat_id=match.group(1),
                participant_name=match.group(2),
            )
    return None


def parse_moderator_session_id(session_id: str) -> ModeratorSessionInfo | None:
    """Extract group chat id from a moderator (or synthesis) session id."""
    if not session_id or MODERATOR_MARKER not in session_id:
        return None

    for pattern in _MODERATOR_PATTERNS:
        match = pattern.match(session_id)
        if match:
            return ModeratorSessionInfo(
                group_chat_id=match.group(1),
                is_synthesis=match.group(2) is not None,
            )
    return None


def resolve_session_id(session_id: str) -> SessionIdentity:
    """Classify a session id. Pure and idempotent."""
    if session_id.startswith(GROUP_CHAT_PREFIX):
        participant = parse_participant_session_id(session_id)
        if participant:
            return SessionIdentity(
                kind=SessionKind.GROUP_CHAT_PARTICIPANT,
                session_id=session_id,
                group_chat_id=participant.group_chat_id,
                participant_name=participant.participant_name,
            )

        moderator = parse_moderator_session_id(session_id)
        if moderator:
            return SessionIdentity(
                kind=SessionKind.GROUP_CHAT_MODERATOR,
                session_id=session_id,
                group_chat_id=moderator.group_chat_id,
                is_synthesis=moderator.is_synthesis,
            )

    if is_terminal_session(session_id):
        return SessionIdentity(kind=SessionKind.TERMINAL, session_id=session_id)

    return SessionIdentity(kind=SessionKind.REGULAR, session_id=session_id)


# --- Construction ---


def build_participant_session_id(
    group_chat_id: str,
    participant_name: str,
    suffix: str | None = None,
) -> str:
    """Build a participant session id (UUID suffix unless one is given)."""
    return f"{GROUP_CHAT_PREFIX}{group_chat_id}{PARTICIPANT_MARKER}{participant_name}-{suffix or uuid.uuid4()}"


def build_moderator_session_id(
    group_chat_id: str,
    synthesis: bool = False,
    suffix: str | None = None,
) -> str:
    """Build a moderator session id, optionally for the synthesis pass."""
    marker = f"{MODERATOR_MARKER}-synthesis" if synthesis else MODERATOR_MARKER
    return f"{GROUP_CHAT_PREFIX}{group_chat_id}{marker}-{suffix or uuid.uuid4()}"


# --- Remote routing helpers ---


def is_terminal_session(session_id: str) -> bool:
    """True for PTY terminal session ids (raw control sequences)."""
    return session_id.endswith(TERMINAL_SUFFIX)


def is_housekeeping_session(session_id: str) -> bool:
    """True for internal batch/synopsis sessions (history only, not live chat)."""
    return "-batch-" in session_id or "-synopsis-" in session_id


def is_ai_output(session_id: str) -> bool:
    return "-ai-" in session_id


def extract_tab_id(session_id: str) -> str | None:
    match = REGEX_AI_TAB_ID.search(session_id)
    return match.group(1) if match else None


def remote_base_session_id(session_id: str) -> str:
    """Strip routing suffixes (``-ai-{tabId}``, ``-terminal``) from a session id."""
    base = REGEX_AI_SUFFIX.sub("", session_id)
    if base.endswith(TERMINAL_SUFFIX):
        base = base[: -len(TERMINAL_SUFFIX)]
    return base
