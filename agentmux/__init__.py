"""agentmux - AI CLI agent process multiplexer.

Runs CLI coding agents (Claude Code, Codex, OpenCode) and terminals as managed
subprocesses and normalizes their output into one event protocol.
"""

__version__ = "0.1.0"
