"""Parser for OpenCode ``run --format json`` output.

OpenCode has no dedicated result message; the response is the sequence of
text parts, and the closing ``step_finish`` (reason ``stop``) carries usage.
"""

from typing import Any

from agentmux.core.models import ParsedEvent, ParsedEventType, ToolState, UsageStats
from agentmux.parsers.base import AgentOutputParser


def _int(value: Any) -> int:
    return int(value) if isinstance(value, (int, float)) else 0


class OpenCodeOutputParser(AgentOutputParser):
    agent_id = "opencode"

    def transform(self, message: dict[str, Any]) -> ParsedEvent:
        msg_type = message.get("type")
        part = message.get("part") if isinstance(message.get("part"), dict) else {}

        if msg_type == "step_start":
            return ParsedEvent(
                type=ParsedEventType.INIT,
                session_id=message.get("sessionID") or part.get("sessionID"),
                raw=message,
            )

        if msg_type == "text":
            return ParsedEvent(
                type=ParsedEventType.TEXT,
                text=part.get("text") or "",
                is_partial=True,
                raw=message,
            )

        if msg_type == "tool_use":
            state = part.get("state") if isinstance(part.get("state"), dict) else {}
            status = "completed" if state.get("status") in ("completed", "error") else "running"
            output = state.get("output")
            return ParsedEvent(
                type=ParsedEventType.TOOL_USE,
                tool_name=part.get("tool"),
                tool_state=ToolState(
                    status=status,
                    input=state.get("input"),
                    output=output if isinstance(output, str) or output is None else str(output),
                ),
                raw=message,
            )

        if msg_type == "step_finish":
            if part.get("reason") == "stop":
                return ParsedEvent(
                    type=ParsedEventType.USAGE,
                    usage=self._usage_from_part(part),
                    raw=message,
                )
            return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

        if msg_type == "error" or message.get("error"):
            text = self.error_text_from_message(message) or "Unknown error"
            return self.error_event(text, message)

        return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

    def _usage_from_part(self, part: dict[str, Any]) -> UsageStats:
        tokens = part.get("tokens") if isinstance(part.get("tokens"), dict) else {}
        cache = tokens.get("cache") if isinstance(tokens.get("cache"), dict) else {}
        reasoning = _int(tokens.get("reasoning"))
        cost = part.get("cost")

        return UsageStats(
            input_tokens=_int(tokens.get("input")),
            output_tokens=_int(tokens.get("output")) + reasoning,
            cache_read_input_tokens=_int(cache.get("read")),
            cache_creation_input_tokens=_int(cache.get("write")),
            reasoning_tokens=reasoning,
            total_cost_usd=float(cost) if isinstance(cost, (int, float)) else 0.0,
            has_cost_data=isinstance(cost, (int, float)),
        )
