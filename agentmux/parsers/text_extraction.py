"""Extract plain response text from buffered agent output.

Group-chat turns are buffered as raw JSONL and converted to text once the
process exits, so the router receives one message per turn.
"""

import json
import logging

from agentmux.core.models import ParsedEventType
from agentmux.parsers import ParserNotFoundError, get_output_parser

logger = logging.getLogger(__name__)


def _looks_like_jsonl(lines: list[str]) -> bool:
    first = next((line for line in lines if line.strip()), None)
    return first is None or first.strip().startswith("{")


def extract_text_generic(raw_output: str) -> str:
    """Best-effort extraction for agents without a registered parser.

    A top-level ``result`` field wins; otherwise common text locations are
    joined with newlines. Non-JSONL input is returned unchanged.
    """
    lines = raw_output.split("\n")
    if not _looks_like_jsonl(lines):
        return raw_output

    text_parts: list[str] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            # Keep plain content lines, skip truncated JSON and id chatter
            if not line.startswith("{") and "session_id" not in line and "sessionID" not in line:
                text_parts.append(line)
            continue
        if not isinstance(message, dict):
            continue

        if message.get("result"):
            return str(message["result"])
        if message.get("text"):
            text_parts.append(str(message["text"]))
        part = message.get("part")
        if isinstance(part, dict) and part.get("text"):
            text_parts.append(str(part["text"]))
        inner = message.get("message")
        if isinstance(inner, dict) and isinstance(inner.get("content"), str):
            text_parts.append(inner["content"])

    return "\n".join(text_parts)


def extract_text_from_agent_output(raw_output: str, agent_type: str | None) -> str:
    """Extract the response text of one turn using the agent's parser.

    The last ``result`` event is authoritative; without one, streamed text
    events are joined with newlines to keep paragraph breaks.
    """
    if not agent_type:
        return extract_text_generic(raw_output)

    try:
        parser = get_output_parser(agent_type)
    except ParserNotFoundError:
        logger.warning(f"No parser found for agent type '{agent_type}', using generic extraction")
        return extract_text_generic(raw_output)

    lines = raw_output.split("\n")
    if not _looks_like_jsonl(lines):
        logger.debug(f"Group chat output is not JSONL, returning as plain text (len={len(raw_output)})")
        return raw_output

    text_parts: list[str] = []
    result_text: str | None = None

    for line in lines:
        event = parser.parse_line(line)
        if event is None or not event.text:
            continue
        if event.type == ParsedEventType.RESULT:
            result_text = event.text
        elif event.type == ParsedEventType.TEXT:
            text_parts.append(event.text)

    if result_text:
        return result_text
    return "\n".join(text_parts)
