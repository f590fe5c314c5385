"""Agent output parsers and the parser registry.

The supervisor resolves a parser once per session at spawn time; agent
families without a parser (e.g. plain terminals) stream raw output only.
"""

from agentmux.parsers.base import AgentOutputParser
from agentmux.parsers.claude import ClaudeOutputParser
from agentmux.parsers.codex import CodexOutputParser
from agentmux.parsers.opencode import OpenCodeOutputParser


class ParserNotFoundError(Exception):
    """No output parser is registered for the agent."""

    pass


_PARSERS: dict[str, type[AgentOutputParser]] = {
    "claude-code": ClaudeOutputParser,
    "codex": CodexOutputParser,
    "opencode": OpenCodeOutputParser,
}


def register_output_parser(agent_id: str, parser_class: type[AgentOutputParser]) -> None:
    """Register (or replace) the parser class for an agent family."""
    _PARSERS[agent_id] = parser_class


def has_output_parser(agent_id: str) -> bool:
    return agent_id in _PARSERS


def get_output_parser(agent_id: str) -> AgentOutputParser:
    """Create a parser instance for an agent family.

    Raises:
        ParserNotFoundError: If no parser is registered for agent_id
    """
    parser_class = _PARSERS.get(agent_id)
    if parser_class is None:
        raise ParserNotFoundError(
            f"No output parser for agent '{agent_id}'. Available: {', '.join(sorted(_PARSERS))}"
        )
    return parser_class()


__all__ = [
    "AgentOutputParser",
    "ClaudeOutputParser",
    "CodexOutputParser",
    "OpenCodeOutputParser",
    "ParserNotFoundError",
    "get_output_parser",
    "has_output_parser",
    "register_output_parser",
]
