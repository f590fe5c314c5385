"""Per-session interpretation of structured agent output.

The supervisor forwards raw chunks unchanged as ``data`` events; this
processor additionally splits stdout into lines, runs them through the
session's agent parser and reports what the supervisor should emit.
"""

import logging
from dataclasses import dataclass, field

from agentmux.core.agents import AgentCapabilities
from agentmux.core.models import AgentError, ParsedEvent, UsageStats
from agentmux.metrics.usage import with_cost
from agentmux.parsers.base import AgentOutputParser

logger = logging.getLogger(__name__)


@dataclass
class OutputUpdate:
    """What one stdout chunk produced."""

    events: list[ParsedEvent] = field(default_factory=list)
    session_id: str | None = None  # Set only the first time one is seen
    usages: list[UsageStats] = field(default_factory=list)
    errors: list[AgentError] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.events or self.session_id or self.usages or self.errors)


class _Tail:
    """Keeps the last ``limit`` characters written to it."""

    def __init__(self, limit: int):
        self.limit = limit
        self._chunks: list[str] = []
        self._length = 0

    def write(self, data: str) -> None:
        self._chunks.append(data)
        self._length += len(data)
        if self._length > 2 * self.limit:
            self._compact()

    def _compact(self) -> None:
        text = "".join(self._chunks)[-self.limit :]
        self._chunks = [text]
        self._length = len(text)

    def getvalue(self) -> str:
        self._compact()
        return self._chunks[0] if self._chunks else ""


class OutputProcessor:
    """Line splitting, parsing and bookkeeping for one session.

    Args:
        parser: Parser for the agent family, or None for raw-only sessions
        capabilities: Capabilities of the agent family
        context_window: Window applied to usage that does not report one
        max_captured_bytes: Size of the stdout/stderr tails kept for exit
            error detection
    """

    def __init__(
        self,
        parser: AgentOutputParser | None,
        capabilities: AgentCapabilities,
        context_window: int,
        max_captured_bytes: int,
    ):
        self.parser = parser
        self.capabilities = capabilities
        self.context_window = context_window
        self._partial_line = ""
        self._stdout_tail = _Tail(max_captured_bytes)
        self._stderr_tail = _Tail(max_captured_bytes)
        self.agent_session_id: str | None = None
        self.result_seen = False
        self.last_usage: UsageStats | None = None

    @property
    def agent_id(self) -> str:
        return self.parser.agent_id if self.parser else ""

    def feed_stdout(self, chunk: str) -> OutputUpdate:
        """Consume a stdout chunk; complete lines are parsed immediately."""
        self._stdout_tail.write(chunk)
        if self.parser is None:
            return OutputUpdate()

        data = self._partial_line + chunk
        lines = data.split("\n")
        self._partial_line = lines.pop()

        update = OutputUpdate()
        for line in lines:
            self._process_line(line.rstrip("\r"), update)
        return update

    def feed_stderr(self, chunk: str) -> None:
        self._stderr_tail.write(chunk)

    def flush(self) -> OutputUpdate:
        """Parse a trailing line that was never newline-terminated."""
        update = OutputUpdate()
        if self.parser is not None and self._partial_line:
            line, self._partial_line = self._partial_line, ""
            self._process_line(line.rstrip("\r"), update)
        return update

    def exit_error(self, exit_code: int) -> AgentError | None:
        if self.parser is None:
            return None
        return self.parser.detect_error_from_exit(
            exit_code,
            self._stderr_tail.getvalue(),
            self._stdout_tail.getvalue(),
        )

    @property
    def captured_stdout(self) -> str:
        return self._stdout_tail.getvalue()

    @property
    def captured_stderr(self) -> str:
        return self._stderr_tail.getvalue()

    def _process_line(self, line: str, update: OutputUpdate) -> None:
        event = self.parser.parse_line(line)
        if event is None:
            return
        update.events.append(event)

        session_id = self.parser.extract_session_id(event)
        if session_id and self.agent_session_id is None:
            self.agent_session_id = session_id
            update.session_id = session_id

        usage = self.parser.extract_usage(event)
        if usage is not None:
            usage = self._normalize_usage(usage)
            self.last_usage = usage
            update.usages.append(usage)

        if self.parser.is_result_message(event):
            self.result_seen = True

        error = self.parser.detect_error_from_line(line)
        if error is not None:
            logger.warning(f"Agent '{self.agent_id}' reported {error.type.value}: {error.message}")
            update.errors.append(error)

    def _normalize_usage(self, usage: UsageStats) -> UsageStats:
        if usage.context_window <= 0 and self.context_window > 0:
            usage = usage.model_copy(update={"context_window": self.context_window})
        if not self.capabilities.supports_cost_tracking:
            return usage.model_copy(update={"total_cost_usd": 0.0, "has_cost_data": False})
        if not usage.has_cost_data:
            return with_cost(usage, self.agent_id)
        return usage
