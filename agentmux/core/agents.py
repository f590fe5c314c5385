"""Agent capability definitions.

Declares what each supported CLI agent can do so the supervisor and the
usage pipeline can treat agent families uniformly. Unknown agents get
conservative defaults (everything disabled).
"""

from dataclasses import dataclass, replace

TERMINAL_AGENT = "terminal"


@dataclass(frozen=True)
class AgentCapabilities:
    """Feature flags for one agent family."""

    supports_resume: bool = False
    supports_json_output: bool = False
    supports_session_id: bool = False
    supports_cost_tracking: bool = False
    supports_usage_stats: bool = False
    supports_batch_mode: bool = False
    supports_streaming: bool = False
    supports_result_messages: bool = False
    # Agent needs a real TTY (interactive prompts)
    requires_pty: bool = False


DEFAULT_CAPABILITIES = AgentCapabilities()

AGENT_CAPABILITIES: dict[str, AgentCapabilities] = {
    "claude-code": AgentCapabilities(
        supports_resume=True,  # --resume
        supports_json_output=True,  # --output-format stream-json
        supports_session_id=True,
        supports_cost_tracking=True,  # total_cost_usd on result messages
        supports_usage_stats=True,
        supports_batch_mode=True,  # --print
        supports_streaming=True,
        supports_result_messages=True,
    ),
    "codex": AgentCapabilities(
        supports_resume=True,  # exec resume <thread_id>
        supports_json_output=True,  # exec --json
        supports_session_id=True,  # thread_id
        supports_cost_tracking=False,  # no pricing in output
        supports_usage_stats=True,
        supports_batch_mode=True,
        supports_streaming=True,
        supports_result_messages=True,  # agent_message items
    ),
    "opencode": AgentCapabilities(
        supports_resume=True,
        supports_json_output=True,  # run --format json
        supports_session_id=True,  # sessionID
        supports_cost_tracking=True,
        supports_usage_stats=True,
        supports_batch_mode=True,
        supports_streaming=True,
        supports_result_messages=False,
    ),
    TERMINAL_AGENT: AgentCapabilities(
        supports_streaming=True,  # PTY streams output
        requires_pty=True,
    ),
}


def get_agent_capabilities(agent_id: str) -> AgentCapabilities:
    """Get capabilities for an agent, falling back to conservative defaults."""
    return AGENT_CAPABILITIES.get(agent_id, DEFAULT_CAPABILITIES)


def with_overrides(capabilities: AgentCapabilities, **overrides: bool) -> AgentCapabilities:
    """Return a copy of capabilities with config overrides applied."""
    valid = {key: value for key, value in overrides.items() if value is not None}
    return replace(capabilities, **valid)
