"""Parser for Claude Code ``--output-format stream-json`` output."""

import json
from typing import Any

from agentmux.core.models import ParsedEvent, ParsedEventType, ToolState
from agentmux.metrics.usage import aggregate_model_usage
from agentmux.parsers.base import AgentOutputParser


def _content_blocks(message: dict[str, Any]) -> list[dict[str, Any]]:
    inner = message.get("message")
    if not isinstance(inner, dict):
        return []
    content = inner.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        return []
    return [block for block in content if isinstance(block, dict)]


def _tool_result_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        return "\n".join(parts)
    return json.dumps(content)


class ClaudeOutputParser(AgentOutputParser):
    """Claude Code stream-json protocol.

    An assistant line may hold several content blocks; text blocks win over
    tool_use blocks so each line still maps to one event.
    """

    agent_id = "claude-code"

    def transform(self, message: dict[str, Any]) -> ParsedEvent:
        msg_type = message.get("type")
        session_id = message.get("session_id")

        if msg_type == "system":
            if message.get("subtype") == "init":
                return ParsedEvent(type=ParsedEventType.INIT, session_id=session_id, raw=message)
            return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

        if msg_type == "assistant":
            return self._transform_assistant(message)

        if msg_type == "user":
            for block in _content_blocks(message):
                if block.get("type") == "tool_result":
                    return ParsedEvent(
                        type=ParsedEventType.TOOL_USE,
                        tool_state=ToolState(
                            status="completed",
                            output=_tool_result_text(block.get("content")),
                        ),
                        raw=message,
                    )
            return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

        if msg_type == "result":
            return self._transform_result(message)

        if msg_type == "error" or message.get("error"):
            text = self.error_text_from_message(message) or "Unknown error"
            return self.error_event(text, message)

        return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

    def error_text_from_message(self, message: dict[str, Any]) -> str | None:
        if message.get("type") == "result" and message.get("is_error"):
            return str(message.get("result") or message.get("subtype") or "Unknown error")
        return super().error_text_from_message(message)

    def _transform_assistant(self, message: dict[str, Any]) -> ParsedEvent:
        blocks = _content_blocks(message)

        texts = [block.get("text", "") for block in blocks if block.get("type") == "text"]
        if texts:
            return ParsedEvent(
                type=ParsedEventType.TEXT,
                text="".join(texts),
                is_partial=True,
                raw=message,
            )

        for block in blocks:
            if block.get("type") == "tool_use":
                return ParsedEvent(
                    type=ParsedEventType.TOOL_USE,
                    tool_name=block.get("name"),
                    tool_state=ToolState(status="running", input=block.get("input")),
                    raw=message,
                )

        return ParsedEvent(type=ParsedEventType.SYSTEM, raw=message)

    def _transform_result(self, message: dict[str, Any]) -> ParsedEvent:
        if message.get("is_error"):
            return self.error_event(self.error_text_from_message(message), message)

        cost = message.get("total_cost_usd")
        usage = aggregate_model_usage(
            message.get("modelUsage"),
            message.get("usage"),
            total_cost_usd=float(cost) if isinstance(cost, (int, float)) else 0.0,
        )
        return ParsedEvent(
            type=ParsedEventType.RESULT,
            session_id=message.get("session_id"),
            text=message.get("result") or "",
            is_partial=False,
            usage=usage,
            raw=message,
        )
