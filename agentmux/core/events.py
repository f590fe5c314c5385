"""Typed pub/sub channel for process events.

The ProcessManager emits on this channel; fan-out listeners subscribe per
event kind. Delivery is synchronous on the event loop thread.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ProcessEvent(str, Enum):
    """Event kinds emitted by the process supervisor."""

    DATA = "data"  # (session_id, chunk)
    EXIT = "exit"  # (session_id, exit_code)
    SESSION_ID = "session-id"  # (session_id, agent_session_id)
    USAGE = "usage"  # (session_id, UsageStats)
    QUERY_COMPLETE = "query-complete"  # (session_id, QueryCompleteData)
    AGENT_ERROR = "agent-error"  # (session_id, AgentError)


# Channel names delivered to the UI boundary
UI_PROCESS_DATA = "process:data"
UI_PROCESS_EXIT = "process:exit"
UI_PROCESS_SESSION_ID = "process:session-id"
UI_PROCESS_USAGE = "process:usage"
UI_PROCESS_AGENT_ERROR = "process:agent-error"
UI_STATS_UPDATED = "stats:updated"

Handler = Callable[..., Any]


class EventEmitter:
    """Minimal event emitter keyed by ProcessEvent.

    A handler that raises is logged and skipped; remaining handlers for the
    same event still run.
    """

    def __init__(self) -> None:
        self._handlers: dict[ProcessEvent, list[Handler]] = defaultdict(list)

    def on(self, event: ProcessEvent | str, handler: Handler) -> None:
        self._handlers[ProcessEvent(event)].append(handler)

    def off(self, event: ProcessEvent | str, handler: Handler) -> None:
        handlers = self._handlers.get(ProcessEvent(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: ProcessEvent | str) -> int:
        return len(self._handlers.get(ProcessEvent(event), []))

    def emit(self, event: ProcessEvent | str, *args: Any) -> bool:
        """Deliver an event to every subscribed handler.

        Returns:
            True if at least one handler was subscribed.
        """
        kind = ProcessEvent(event)
        handlers = list(self._handlers.get(kind, []))
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Listener for '{kind.value}' failed: {e}", exc_info=True)
        return bool(handlers)
