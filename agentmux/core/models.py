"""Data models for agent process supervision.

Uses Pydantic for the normalized event protocol shared with the UI boundary.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class ParsedEventType(str, Enum):
    """Kinds of normalized events produced by agent output parsers."""

    INIT = "init"  # Carries the agent-declared session id
    SYSTEM = "system"
    TEXT = "text"  # Streamed partial or final assistant text
    TOOL_USE = "tool_use"
    RESULT = "result"  # Final authoritative response text
    USAGE = "usage"
    ERROR = "error"


class AgentErrorType(str, Enum):
    """Classification of agent-reported failures."""

    AUTH_EXPIRED = "auth_expired"
    TOKEN_EXHAUSTION = "token_exhaustion"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    PERMISSION_DENIED = "permission_denied"
    SESSION_NOT_FOUND = "session_not_found"
    AGENT_CRASHED = "agent_crashed"
    UNKNOWN = "unknown"


# --- Usage ---


class UsageStats(BaseModel):
    """Normalized token/cost accounting for one agent turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    # Reasoning tokens are already counted in output_tokens for agents that
    # report them separately; kept here for display.
    reasoning_tokens: int | None = None
    total_cost_usd: float = 0.0
    # False when the agent family publishes no pricing ("unknown", not "free")
    has_cost_data: bool = True
    context_window: int = 0


# --- Parsed events ---


class ToolState(BaseModel):
    """State of a tool invocation reported by an agent."""

    status: Literal["running", "completed"]
    input: Any = None
    output: str | None = None


class AgentError(BaseModel):
    """An error detected from agent output or process exit."""

    type: AgentErrorType
    message: str
    recoverable: bool
    agent_id: str
    timestamp: int
    raw: dict[str, Any] = Field(default_factory=dict)


class ParsedEvent(BaseModel):
    """One normalized event per raw output line."""

    type: ParsedEventType
    session_id: str | None = None
    text: str | None = None
    is_partial: bool | None = None
    tool_name: str | None = None
    tool_state: ToolState | None = None
    usage: UsageStats | None = None
    recoverable: bool | None = None  # Only set on error events
    raw: Any = None


# --- Process supervision ---


class SpawnResult(BaseModel):
    """Outcome of a spawn request. pid is -1 on failure."""

    pid: int
    success: bool


class CommandResult(BaseModel):
    """Outcome of a one-off command run without a PTY."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


class ProcessInfo(BaseModel):
    """Read-only view of a managed process (no OS handles)."""

    session_id: str
    tool_type: str
    pid: int
    cwd: str
    is_terminal: bool
    is_batch_mode: bool = False
    start_time: int  # epoch milliseconds


class QueryCompleteData(BaseModel):
    """Emitted once a full agent turn completes."""

    session_id: str
    agent_type: str
    source: Literal["user", "auto"] = "user"
    start_time: int  # epoch milliseconds
    duration: int  # milliseconds
    project_path: str | None = None
    tab_id: str | None = None


class QueryEvent(QueryCompleteData):
    """A persisted query-complete record."""

    id: str


# --- Remote broadcast ---


class RemoteOutputMessage(BaseModel):
    """Payload pushed to remote session clients for live output."""

    type: Literal["session_output"] = "session_output"
    session_id: str
    tab_id: str | None = None
    data: str
    source: Literal["ai", "terminal"]
    timestamp: int
    msg_id: str
