"""Fan-out of process events to the UI, group chat, remote clients and stats.

Each ``setup_*`` function subscribes one handler to the ProcessManager and can
be installed on its own; ``setup_process_listeners`` installs them all.
Handlers run on the event loop. Collaborator calls that may block or fail
run as background tasks whose failures are logged, never raised back into
the process event stream.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

from agentmux.core.events import (
    UI_PROCESS_AGENT_ERROR,
    UI_PROCESS_DATA,
    UI_PROCESS_EXIT,
    UI_PROCESS_SESSION_ID,
    UI_PROCESS_USAGE,
    UI_STATS_UPDATED,
    ProcessEvent,
)
from agentmux.core.models import AgentError, QueryCompleteData, RemoteOutputMessage, UsageStats
from agentmux.core.process_manager import ProcessManager
from agentmux.core.session_identity import (
    SessionKind,
    extract_tab_id,
    is_ai_output,
    is_housekeeping_session,
    is_terminal_session,
    parse_moderator_session_id,
    parse_participant_session_id,
    remote_base_session_id,
    resolve_session_id,
)
from agentmux.groupchat.collaborators import (
    ContextUsage,
    GroupChatEmitters,
    GroupChatStorage,
    RemoteBroadcaster,
    SafeSend,
    StatsStore,
)
from agentmux.groupchat.output_buffer import GroupChatOutputBuffer
from agentmux.metrics.usage import calculate_context_tokens, context_usage_percent
from agentmux.parsers.text_extraction import extract_text_from_agent_output

logger = logging.getLogger(__name__)


@dataclass
class ListenerDependencies:
    """Collaborators shared by the process listeners."""

    safe_send: SafeSend
    get_remote_broadcaster: Callable[[], RemoteBroadcaster | None]
    output_buffer: GroupChatOutputBuffer
    group_chat_storage: GroupChatStorage
    group_chat_emitters: GroupChatEmitters
    get_stats_store: Callable[[], StatsStore]
    # Collaborator calls still in flight
    background_tasks: set[asyncio.Task] = field(default_factory=set)


def _run_in_background(
    deps: ListenerDependencies,
    coro: Coroutine[Any, Any, None],
    description: str,
) -> None:
    task = asyncio.get_running_loop().create_task(coro)
    deps.background_tasks.add(task)

    def _done(t: asyncio.Task) -> None:
        deps.background_tasks.discard(t)
        if t.cancelled():
            return
        error = t.exception()
        if error is not None:
            logger.error(f"{description} failed: {error}", exc_info=error)

    task.add_done_callback(_done)


def _new_msg_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


async def _notify_participants_changed(
    deps: ListenerDependencies,
    group_chat_id: str,
) -> None:
    chat = await deps.group_chat_storage.load_group_chat(group_chat_id)
    if chat is not None:
        deps.group_chat_emitters.emit_participants_changed(group_chat_id, chat.participants)


# --- data ---


def setup_data_listener(manager: ProcessManager, deps: ListenerDependencies) -> None:
    """Buffer group-chat output; forward everything else to the UI and remote clients."""

    def on_data(session_id: str, data: str) -> None:
        identity = resolve_session_id(session_id)
        if identity.is_group_chat:
            total = deps.output_buffer.append(session_id, data, manager.tool_type_of(session_id))
            logger.debug(
                f"Buffered {len(data)} chars for group chat {identity.group_chat_id} "
                f"({identity.kind.value}, total={total})"
            )
            return

        deps.safe_send(UI_PROCESS_DATA, session_id, data)

        broadcaster = deps.get_remote_broadcaster()
        if broadcaster is None:
            return
        # Raw PTY output carries control sequences
        if is_terminal_session(session_id):
            logger.debug(f"Skipping remote broadcast of PTY output for {session_id}")
            return
        if is_housekeeping_session(session_id):
            logger.debug(f"Skipping remote broadcast of batch/synopsis output for {session_id}")
            return

        base_session_id = remote_base_session_id(session_id)
        message = RemoteOutputMessage(
            session_id=base_session_id,
            tab_id=extract_tab_id(session_id),
            data=data,
            source="ai" if is_ai_output(session_id) else "terminal",
            timestamp=int(time.time() * 1000),
            msg_id=_new_msg_id(),
        )
        broadcaster.broadcast_to_session_clients(base_session_id, message)

    manager.on(ProcessEvent.DATA, on_data)


# --- exit ---


async def _route_group_chat_output(
    deps: ListenerDependencies,
    session_id: str,
    raw_output: str,
    agent_type: str | None,
) -> None:
    text = extract_text_from_agent_output(raw_output, agent_type)
    if not text.strip():
        logger.warning(f"Group chat session {session_id} produced no response text")
        return

    participant = parse_participant_session_id(session_id)
    if participant is not None:
        await deps.group_chat_storage.route_participant_response(
            participant.group_chat_id, participant.participant_name, text
        )
        return

    moderator = parse_moderator_session_id(session_id)
    if moderator is not None:
        await deps.group_chat_storage.route_moderator_response(
            moderator.group_chat_id, text, is_synthesis=moderator.is_synthesis
        )


def setup_exit_listener(manager: ProcessManager, deps: ListenerDependencies) -> None:
    """Release buffered group-chat turns, then forward the exit to the UI."""

    def on_exit(session_id: str, exit_code: int) -> None:
        identity = resolve_session_id(session_id)
        if identity.is_group_chat:
            agent_type = deps.output_buffer.agent_type(session_id)
            raw_output = deps.output_buffer.pop(session_id)
            if raw_output is None:
                logger.warning(f"Group chat session {session_id} exited ({exit_code}) with no output")
            else:
                _run_in_background(
                    deps,
                    _route_group_chat_output(deps, session_id, raw_output, agent_type),
                    f"Routing group chat output for {session_id}",
                )

        deps.safe_send(UI_PROCESS_EXIT, session_id, exit_code)

    manager.on(ProcessEvent.EXIT, on_exit)


# --- session-id ---


async def _store_moderator_session_id(
    deps: ListenerDependencies,
    group_chat_id: str,
    agent_session_id: str,
) -> None:
    await deps.group_chat_storage.update_group_chat(
        group_chat_id, moderator_agent_session_id=agent_session_id
    )
    deps.group_chat_emitters.emit_moderator_session_id_changed(group_chat_id, agent_session_id)


async def _store_participant_fields(
    deps: ListenerDependencies,
    group_chat_id: str,
    participant_name: str,
    **fields: Any,
) -> None:
    await deps.group_chat_storage.update_participant(group_chat_id, participant_name, **fields)
    await _notify_participants_changed(deps, group_chat_id)


def setup_session_id_listener(manager: ProcessManager, deps: ListenerDependencies) -> None:
    """Record agent session ids on participants/moderators; always forward to the UI."""

    def on_session_id(session_id: str, agent_session_id: str) -> None:
        identity = resolve_session_id(session_id)
        if identity.kind == SessionKind.GROUP_CHAT_PARTICIPANT:
            _run_in_background(
                deps,
                _store_participant_fields(
                    deps,
                    identity.group_chat_id,
                    identity.participant_name,
                    agent_session_id=agent_session_id,
                ),
                f"Updating agent session id of participant {identity.participant_name}",
            )
        elif identity.kind == SessionKind.GROUP_CHAT_MODERATOR:
            _run_in_background(
                deps,
                _store_moderator_session_id(deps, identity.group_chat_id, agent_session_id),
                f"Updating moderator agent session id for group chat {identity.group_chat_id}",
            )

        deps.safe_send(UI_PROCESS_SESSION_ID, session_id, agent_session_id)

    manager.on(ProcessEvent.SESSION_ID, on_session_id)


# --- usage ---


def setup_usage_listener(manager: ProcessManager, deps: ListenerDependencies) -> None:
    """Update participant/moderator context usage; always forward to the UI."""

    def on_usage(session_id: str, stats: UsageStats) -> None:
        identity = resolve_session_id(session_id)
        if identity.is_group_chat:
            snapshot = ContextUsage(
                context_usage=context_usage_percent(stats),
                token_count=calculate_context_tokens(stats),
                total_cost=stats.total_cost_usd,
            )
            if identity.kind == SessionKind.GROUP_CHAT_PARTICIPANT:
                _run_in_background(
                    deps,
                    _store_participant_fields(
                        deps,
                        identity.group_chat_id,
                        identity.participant_name,
                        context_usage=snapshot.context_usage,
                        token_count=snapshot.token_count,
                        total_cost=snapshot.total_cost,
                    ),
                    f"Updating usage of participant {identity.participant_name}",
                )
            else:
                deps.group_chat_emitters.emit_moderator_usage(identity.group_chat_id, snapshot)

        deps.safe_send(UI_PROCESS_USAGE, session_id, stats)

    manager.on(ProcessEvent.USAGE, on_usage)


# --- agent-error ---


def setup_agent_error_listener(manager: ProcessManager, deps: ListenerDependencies) -> None:
    def on_agent_error(session_id: str, error: AgentError) -> None:
        logger.info(
            f"Agent error in {session_id}: {error.type.value} "
            f"(recoverable={error.recoverable}) {error.message}"
        )
        deps.safe_send(UI_PROCESS_AGENT_ERROR, session_id, error)

    manager.on(ProcessEvent.AGENT_ERROR, on_agent_error)


# --- query-complete ---


async def _record_query_event(deps: ListenerDependencies, data: QueryCompleteData) -> None:
    try:
        store = deps.get_stats_store()
        if not store.is_ready():
            return
        loop = asyncio.get_running_loop()
        event_id = await loop.run_in_executor(None, store.insert_query_event, data)
    except Exception as e:
        logger.error(f"Failed to record query event for {data.session_id}: {e}")
        return

    logger.debug(
        f"Recorded query event {event_id} ({data.agent_type}, {data.source}, {data.duration}ms)"
    )
    deps.safe_send(UI_STATS_UPDATED)


def setup_stats_listener(manager: ProcessManager, deps: ListenerDependencies) -> None:
    """Persist one query event per completed turn."""

    def on_query_complete(session_id: str, data: QueryCompleteData) -> None:
        _run_in_background(deps, _record_query_event(deps, data), f"Recording query event for {session_id}")

    manager.on(ProcessEvent.QUERY_COMPLETE, on_query_complete)


def setup_process_listeners(manager: ProcessManager, deps: ListenerDependencies) -> None:
    setup_data_listener(manager, deps)
    setup_exit_listener(manager, deps)
    setup_session_id_listener(manager, deps)
    setup_usage_listener(manager, deps)
    setup_agent_error_listener(manager, deps)
    setup_stats_listener(manager, deps)
