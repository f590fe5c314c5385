"""Output buffering for group-chat sessions.

Streaming output of moderator and participant processes is held back and
released as one message when the process exits, so a turn never reaches the
chat interleaved with other participants' chatter.
"""

from dataclasses import dataclass, field


@dataclass
class _Buffer:
    chunks: list[str] = field(default_factory=list)
    total_length: int = 0
    agent_type: str | None = None


class GroupChatOutputBuffer:
    """Per-session chunk lists with a running length.

    Appends are O(1); chunks are joined only when read.
    """

    def __init__(self) -> None:
        self._buffers: dict[str, _Buffer] = {}

    def append(self, session_id: str, data: str, agent_type: str | None = None) -> int:
        """Append a chunk and return the buffered length for the session."""
        buffer = self._buffers.get(session_id)
        if buffer is None:
            buffer = _Buffer()
            self._buffers[session_id] = buffer
        if buffer.agent_type is None and agent_type:
            buffer.agent_type = agent_type
        buffer.chunks.append(data)
        buffer.total_length += len(data)
        return buffer.total_length

    def get_output(self, session_id: str) -> str | None:
        buffer = self._buffers.get(session_id)
        if buffer is None or not buffer.chunks:
            return None
        return "".join(buffer.chunks)

    def agent_type(self, session_id: str) -> str | None:
        buffer = self._buffers.get(session_id)
        return buffer.agent_type if buffer else None

    def has_output(self, session_id: str) -> bool:
        buffer = self._buffers.get(session_id)
        return buffer is not None and bool(buffer.chunks)

    def clear(self, session_id: str) -> None:
        self._buffers.pop(session_id, None)

    def pop(self, session_id: str) -> str | None:
        """Return the buffered output and forget the session."""
        output = self.get_output(session_id)
        self.clear(session_id)
        return output

    def session_ids(self) -> list[str]:
        return list(self._buffers)
