"""Interfaces of the components the process listeners talk to.

The chat-state store, the UI channel and the remote broadcaster live in the
host application; listeners only depend on these protocols.
"""

from typing import Any, Protocol, Sequence

from pydantic import BaseModel

from agentmux.core.models import QueryCompleteData, RemoteOutputMessage


class ContextUsage(BaseModel):
    """Context and cost snapshot shown on participant/moderator cards."""

    context_usage: int  # percent, 0-100
    token_count: int
    total_cost: float


class GroupChat(Protocol):
    participants: Sequence[Any]


class GroupChatStorage(Protocol):
    """Persistent group-chat state. All methods are coroutines."""

    async def load_group_chat(self, group_chat_id: str) -> GroupChat | None: ...

    async def update_participant(self, group_chat_id: str, participant_name: str, **fields: Any) -> None: ...

    async def update_group_chat(self, group_chat_id: str, **fields: Any) -> None: ...

    async def route_moderator_response(self, group_chat_id: str, text: str, is_synthesis: bool = False) -> None: ...

    async def route_participant_response(self, group_chat_id: str, participant_name: str, text: str) -> None: ...


class GroupChatEmitters(Protocol):
    """Notifications to the group-chat UI."""

    def emit_participants_changed(self, group_chat_id: str, participants: Sequence[Any]) -> None: ...

    def emit_moderator_session_id_changed(self, group_chat_id: str, agent_session_id: str) -> None: ...

    def emit_moderator_usage(self, group_chat_id: str, usage: ContextUsage) -> None: ...


class RemoteBroadcaster(Protocol):
    def broadcast_to_session_clients(self, session_id: str, message: RemoteOutputMessage) -> None: ...


class StatsStore(Protocol):
    def is_ready(self) -> bool: ...

    def insert_query_event(self, data: QueryCompleteData) -> str: ...


class SafeSend(Protocol):
    """Sends to the UI channel; a no-op when the UI is gone."""

    def __call__(self, channel: str, *args: Any) -> None: ...
