"""Known error signatures per agent family.

Each agent CLI phrases its failures differently; these tables map output text
to an AgentErrorType with a user-facing message and a recoverable flag.
Family-specific patterns are checked before the shared ones.
"""

import re
from dataclasses import dataclass

from agentmux.core.models import AgentErrorType


@dataclass(frozen=True)
class ErrorPattern:
    """One error signature."""

    pattern: re.Pattern[str]
    type: AgentErrorType
    message: str
    recoverable: bool


def _p(regex: str, error_type: AgentErrorType, message: str, recoverable: bool) -> ErrorPattern:
    return ErrorPattern(re.compile(regex, re.IGNORECASE), error_type, message, recoverable)


COMMON_ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    _p(
        r"invalid api key|unauthorized|authentication (failed|required)|not logged in|please (log ?in|login)",
        AgentErrorType.AUTH_EXPIRED,
        "Authentication failed. Please log in again.",
        False,
    ),
    _p(
        r"context[_ ]length[_ ]exceeded|maximum context|prompt is too long|too many tokens",
        AgentErrorType.TOKEN_EXHAUSTION,
        "The conversation has exceeded the model's context window.",
        True,
    ),
    _p(
        r"rate[_ ]limit|too many requests|(status|http|error|code)[^0-9\n]{0,10}\b429\b|quota exceeded|overloaded",
        AgentErrorType.RATE_LIMITED,
        "Rate limited by the provider. Wait a moment and try again.",
        True,
    ),
    _p(
        r"econnrefused|econnreset|enotfound|connection (refused|reset)|network error|timed out|etimedout",
        AgentErrorType.NETWORK_ERROR,
        "Network error while contacting the provider.",
        True,
    ),
    _p(
        r"permission denied|eacces|operation not permitted",
        AgentErrorType.PERMISSION_DENIED,
        "Permission denied.",
        False,
    ),
)

CLAUDE_ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    _p(
        r"oauth token (has )?expired|credit balance is too low",
        AgentErrorType.AUTH_EXPIRED,
        "Claude authentication expired or account has no credit.",
        False,
    ),
    _p(
        r"no conversation found with session id",
        AgentErrorType.SESSION_NOT_FOUND,
        "The session to resume no longer exists.",
        True,
    ),
)

CODEX_ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    _p(
        r"codex login|openai_api_key",
        AgentErrorType.AUTH_EXPIRED,
        "Codex is not authenticated. Run 'codex login'.",
        False,
    ),
    _p(
        r"usage limit|you've hit your usage limit",
        AgentErrorType.RATE_LIMITED,
        "Codex usage limit reached.",
        True,
    ),
    _p(
        r"(thread|session|conversation) not found",
        AgentErrorType.SESSION_NOT_FOUND,
        "The Codex thread to resume no longer exists.",
        True,
    ),
)

OPENCODE_ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    _p(
        r"providerautherror|no provider configured",
        AgentErrorType.AUTH_EXPIRED,
        "OpenCode provider is not authenticated.",
        False,
    ),
    _p(
        r"session .*not found",
        AgentErrorType.SESSION_NOT_FOUND,
        "The OpenCode session to resume no longer exists.",
        True,
    ),
)

AGENT_ERROR_PATTERNS: dict[str, tuple[ErrorPattern, ...]] = {
    "claude-code": CLAUDE_ERROR_PATTERNS,
    "codex": CODEX_ERROR_PATTERNS,
    "opencode": OPENCODE_ERROR_PATTERNS,
}


def get_error_patterns(agent_id: str) -> tuple[ErrorPattern, ...]:
    """Family-specific patterns followed by the shared ones."""
    return AGENT_ERROR_PATTERNS.get(agent_id, ()) + COMMON_ERROR_PATTERNS


def match_error_pattern(patterns: tuple[ErrorPattern, ...], text: str) -> ErrorPattern | None:
    """Return the first pattern that matches text, or None."""
    if not text:
        return None
    for pattern in patterns:
        if pattern.pattern.search(text):
            return pattern
    return None
