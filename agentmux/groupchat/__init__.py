"""Group-chat output buffering and process event fan-out."""

from agentmux.groupchat.listeners import ListenerDependencies, setup_process_listeners
from agentmux.groupchat.output_buffer import GroupChatOutputBuffer

__all__ = ["GroupChatOutputBuffer", "ListenerDependencies", "setup_process_listeners"]
