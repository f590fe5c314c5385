"""Base class for agent output parsers.

Each agent family (Claude Code, Codex, OpenCode, ...) streams its own JSONL
protocol. Parsers turn one raw line into one normalized ParsedEvent and
classify failures from output lines or process exit.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any

from agentmux.core.models import AgentError, AgentErrorType, ParsedEvent, ParsedEventType, UsageStats
from agentmux.parsers.error_patterns import get_error_patterns, match_error_pattern


def _now_ms() -> int:
    return int(time.time() * 1000)


class AgentOutputParser(ABC):
    """Converts raw agent output lines into ParsedEvents.

    Subclasses implement ``transform`` for their protocol. Line handling,
    fallback to raw text, and error detection are shared.
    """

    agent_id: str = ""

    def parse_line(self, line: str) -> ParsedEvent | None:
        """Parse one output line.

        Returns:
            None for blank lines. Lines that are not a JSON object become a
            ``text`` event carrying the line unchanged.
        """
        if not line.strip():
            return None

        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            return ParsedEvent(type=ParsedEventType.TEXT, text=line, raw=line)

        if not isinstance(message, dict):
            return ParsedEvent(type=ParsedEventType.TEXT, text=line, raw=line)

        return self.transform(message)

    @abstractmethod
    def transform(self, message: dict[str, Any]) -> ParsedEvent:
        """Map one decoded JSON object to a ParsedEvent."""
        pass

    def is_result_message(self, event: ParsedEvent) -> bool:
        """True for the final authoritative response of a turn."""
        return event.type == ParsedEventType.RESULT and bool(event.text)

    def extract_session_id(self, event: ParsedEvent) -> str | None:
        return event.session_id or None

    def extract_usage(self, event: ParsedEvent) -> UsageStats | None:
        return event.usage

    # --- Error detection ---

    def error_text_from_message(self, message: dict[str, Any]) -> str | None:
        """Pull an explicit error message out of a structured line, if any."""
        error = message.get("error")
        if not error:
            return None
        if isinstance(error, str):
            return error
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        return json.dumps(error)

    def classify_error_text(self, text: str) -> tuple[AgentErrorType, str, bool] | None:
        match = match_error_pattern(get_error_patterns(self.agent_id), text)
        if match is None:
            return None
        return match.type, match.message, match.recoverable

    def error_event(self, text: str, raw: Any) -> ParsedEvent:
        """Build an ``error`` event, classifying recoverability from known signatures."""
        classified = self.classify_error_text(text)
        recoverable = classified[2] if classified else True
        return ParsedEvent(type=ParsedEventType.ERROR, text=text, recoverable=recoverable, raw=raw)

    def detect_error_from_line(self, line: str) -> AgentError | None:
        """Detect a known error signature in one output line.

        A structured error field is checked first; otherwise the raw line.
        """
        if not line.strip():
            return None

        structured_error = None
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            message = None
        if isinstance(message, dict):
            structured_error = self.error_text_from_message(message)

        classified = self.classify_error_text(structured_error or line)
        if classified is None:
            if structured_error is None:
                return None
            # Explicit error field with no known signature
            classified = (AgentErrorType.UNKNOWN, structured_error, True)

        error_type, error_message, recoverable = classified
        return AgentError(
            type=error_type,
            message=error_message,
            recoverable=recoverable,
            agent_id=self.agent_id,
            timestamp=_now_ms(),
            raw={"error_line": line},
        )

    def detect_error_from_exit(self, exit_code: int, stderr: str, stdout: str) -> AgentError | None:
        """Classify a process exit.

        Exit code 0 is never an error. An unrecognized non-zero exit is a
        recoverable crash carrying the captured streams.
        """
        if exit_code == 0:
            return None

        raw = {"exit_code": exit_code, "stderr": stderr, "stdout": stdout}
        classified = self.classify_error_text(f"{stderr}\n{stdout}")
        if classified:
            error_type, error_message, recoverable = classified
            return AgentError(
                type=error_type,
                message=error_message,
                recoverable=recoverable,
                agent_id=self.agent_id,
                timestamp=_now_ms(),
                raw=raw,
            )

        return AgentError(
            type=AgentErrorType.AGENT_CRASHED,
            message=f"Agent exited with code {exit_code}",
            recoverable=True,
            agent_id=self.agent_id,
            timestamp=_now_ms(),
            raw=raw,
        )
