"""Parser for Codex ``exec --json`` output.

Message types:
- thread.started: session start, carries thread_id (the resume id)
- turn.started: agent began processing
- item.completed: reasoning, agent_message, tool_call or tool_result item
- turn.completed: end of turn with usage (no response text)
- error: failure
"""

from typing import Any

from agentmux.core.models import ParsedEvent, ParsedEventType, ToolState, UsageStats
from agentmux.parsers.base import AgentOutputParser


def decode_tool_output(output: Any) -> str:
    """Decode tool output that may arrive as a string or a byte array."""
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, list):
        # Bulk conversion; large command outputs arrive as byte arrays
        try:
            return bytes(output).decode("utf-8", errors="replace")
        except (TypeError, ValueError):
            return ",".join(str(b) for b in output)
    return str(output)


class CodexOutputParser(AgentOutputParser):
    """Codex JSONL protocol."""

    agent_id = "codex"

    def transform(self, message: dict[str, Any]) -> ParsedEvent:
        msg_type = message.get("type")

        if msg_type == "thread.started":
            return ParsedEvent(
                type=ParsedEventType.INIT,
                session_id=message.get("thread_id"),
                raw=message,
            )

        if msg_type == "turn.started":
            return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

        if msg_type == "item.completed" and isinstance(message.get("item"), dict):
            return self._transform_item(message["item"], message)

        # turn.completed only carries usage; the response text came earlier
        # as an agent_message item.
        if msg_type == "turn.completed":
            return ParsedEvent(
                type=ParsedEventType.USAGE,
                usage=self._usage_from_message(message),
                raw=message,
            )

        if msg_type == "error" or message.get("error"):
            text = self.error_text_from_message(message) or message.get("message") or "Unknown error"
            return self.error_event(text, message)

        return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

    def _transform_item(self, item: dict[str, Any], message: dict[str, Any]) -> ParsedEvent:
        item_type = item.get("type")

        if item_type == "reasoning":
            return ParsedEvent(
                type=ParsedEventType.TEXT,
                text=item.get("text") or "",
                is_partial=True,
                raw=message,
            )

        if item_type == "agent_message":
            return ParsedEvent(
                type=ParsedEventType.RESULT,
                text=item.get("text") or "",
                is_partial=False,
                raw=message,
            )

        if item_type == "tool_call":
            return ParsedEvent(
                type=ParsedEventType.TOOL_USE,
                tool_name=item.get("tool"),
                tool_state=ToolState(status="running", input=item.get("args")),
                raw=message,
            )

        if item_type == "tool_result":
            return ParsedEvent(
                type=ParsedEventType.TOOL_USE,
                tool_state=ToolState(status="completed", output=decode_tool_output(item.get("output"))),
                raw=message,
            )

        return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

    def _usage_from_message(self, message: dict[str, Any]) -> UsageStats | None:
        usage = message.get("usage")
        if not isinstance(usage, dict):
            return None

        output_tokens = usage.get("output_tokens") or 0
        reasoning_tokens = usage.get("reasoning_output_tokens") or 0

        # Codex publishes no cost; pricing varies by model
        return UsageStats(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=output_tokens + reasoning_tokens,
            cache_read_input_tokens=usage.get("cached_input_tokens") or 0,
            cache_creation_input_tokens=0,
            reasoning_tokens=reasoning_tokens,
            total_cost_usd=0.0,
            has_cost_data=False,
        )
