"""Process supervisor for agent CLIs and interactive terminals.

Every managed process is keyed by a session id. Terminals (and agents that
need a TTY) run under a pseudo-terminal; everything else runs as a plain
child with piped stdio. Output is streamed as events on the manager itself:

    data(session_id, chunk)
    exit(session_id, exit_code)          always last for a session
    session-id(session_id, agent_session_id)
    usage(session_id, UsageStats)
    agent-error(session_id, AgentError)
    query-complete(session_id, QueryCompleteData)

All I/O runs on one asyncio event loop; nothing here blocks on a child.
"""

import asyncio
import codecs
import fcntl
import logging
import os
import signal
import struct
import subprocess
import termios
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from agentmux.core.agents import TERMINAL_AGENT
from agentmux.core.config import SupervisorConfig
from agentmux.core.events import EventEmitter, ProcessEvent
from agentmux.core.models import CommandResult, ProcessInfo, QueryCompleteData, SpawnResult
from agentmux.core.output_processor import OutputProcessor, OutputUpdate
from agentmux.metrics.usage import default_context_window
from agentmux.parsers import get_output_parser, has_output_parser

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65536
CTRL_C = "\x03"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _set_terminal_size(fd: int, cols: int, rows: int) -> None:
    safe_cols = max(1, int(cols))
    safe_rows = max(1, int(rows))
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", safe_rows, safe_cols, 0, 0))


def _signal_process_group(pid: int, sig: signal.Signals) -> bool:
    """Signal the child's process group, falling back to the pid alone."""
    try:
        pgid = os.getpgid(pid)
    except OSError:
        pgid = 0

    if pgid:
        try:
            os.killpg(pgid, sig)
            return True
        except OSError:
            pass

    try:
        os.kill(pid, sig)
        return True
    except OSError:
        return False


@dataclass
class ProcessConfig:
    """Parameters for one spawn request."""

    session_id: str
    tool_type: str
    cwd: str
    command: str = ""
    args: list[str] = field(default_factory=list)
    requires_pty: bool = False
    is_batch_mode: bool = False
    # Written to stdin (then closed) for batch agents
    prompt: str | None = None
    # Terminal sessions only; falls back to the configured shell
    shell: str | None = None
    env: dict[str, str] | None = None
    query_source: Literal["user", "auto"] = "user"
    project_path: str | None = None
    tab_id: str | None = None


@dataclass
class ManagedProcess:
    """Process table entry. Holds OS handles; never leaves this module."""

    session_id: str
    tool_type: str
    cwd: str
    pid: int
    is_terminal: bool
    is_batch_mode: bool
    start_time: int
    processor: OutputProcessor
    query_source: Literal["user", "auto"] = "user"
    project_path: str | None = None
    tab_id: str | None = None
    # Exactly one of these is set
    process: asyncio.subprocess.Process | None = None
    pty_process: subprocess.Popen | None = None
    master_fd: int | None = None
    decoder: codecs.IncrementalDecoder | None = None
    # Replaced by a newer spawn with the same id; its events are dropped
    superseded: bool = False
    error_emitted: bool = False

    @property
    def uses_pty(self) -> bool:
        return self.master_fd is not None

    def is_running(self) -> bool:
        if self.pty_process is not None:
            return self.pty_process.poll() is None
        return self.process is not None and self.process.returncode is None

    def info(self) -> ProcessInfo:
        return ProcessInfo(
            session_id=self.session_id,
            tool_type=self.tool_type,
            pid=self.pid,
            cwd=self.cwd,
            is_terminal=self.is_terminal,
            is_batch_mode=self.is_batch_mode,
            start_time=self.start_time,
        )


class ProcessManager(EventEmitter):
    """Owns the process table and the event channel.

    USAGE:
        manager = ProcessManager(load_config())
        manager.on(ProcessEvent.DATA, on_data)
        result = await manager.spawn(ProcessConfig(session_id="s1", tool_type="codex", ...))
    """

    def __init__(self, config: SupervisorConfig | None = None):
        super().__init__()
        self.config = config or SupervisorConfig()
        self._processes: dict[str, ManagedProcess] = {}
        # Killed entries whose exit has not been reported yet
        self._exiting: dict[str, ManagedProcess] = {}
        self._tasks: set[asyncio.Task] = set()

    # --- Spawning ---

    async def spawn(self, config: ProcessConfig) -> SpawnResult:
        """Start a process for a session.

        An existing process with the same session id is torn down first.
        Spawn failures are reported through the result, never raised.
        """
        previous = self._processes.pop(config.session_id, None)
        if previous is not None:
            logger.info(f"Replacing existing process for session {config.session_id}")
            previous.superseded = True
            self._terminate(previous)
        killed = self._exiting.pop(config.session_id, None)
        if killed is not None:
            # The id now belongs to the new process
            killed.superseded = True

        is_terminal = config.tool_type == TERMINAL_AGENT
        capabilities = self.config.capabilities_for(config.tool_type)
        use_pty = is_terminal or config.requires_pty or capabilities.requires_pty

        parser = None
        if not is_terminal and has_output_parser(config.tool_type):
            parser = get_output_parser(config.tool_type)
        context_window = self.config.context_window_for(config.tool_type)
        processor = OutputProcessor(
            parser,
            capabilities,
            context_window if context_window is not None else default_context_window(config.tool_type),
            self.config.max_captured_output_bytes,
        )

        try:
            if use_pty:
                entry = self._spawn_pty(config, processor, is_terminal)
            else:
                entry = await self._spawn_plain(config, processor)
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error(f"Failed to spawn {config.tool_type} for session {config.session_id}: {e}")
            return SpawnResult(pid=-1, success=False)

        self._processes[config.session_id] = entry
        logger.info(
            f"Spawned {config.tool_type} for session {config.session_id} "
            f"(pid={entry.pid}, pty={entry.uses_pty})"
        )

        if entry.uses_pty:
            asyncio.get_running_loop().add_reader(entry.master_fd, self._on_pty_readable, entry)
            if config.prompt is not None:
                self.write(config.session_id, config.prompt)
        else:
            self._track(asyncio.create_task(self._run_plain(entry, config.prompt)))

        return SpawnResult(pid=entry.pid, success=True)

    def _build_env(self, config: ProcessConfig, use_pty: bool) -> dict[str, str]:
        env = dict(os.environ)
        if use_pty:
            env["TERM"] = self.config.term_name
        if config.env:
            env.update(config.env)
        return env

    def _new_entry(self, config: ProcessConfig, processor: OutputProcessor, pid: int, is_terminal: bool) -> ManagedProcess:
        return ManagedProcess(
            session_id=config.session_id,
            tool_type=config.tool_type,
            cwd=config.cwd,
            pid=pid,
            is_terminal=is_terminal,
            is_batch_mode=config.is_batch_mode,
            start_time=_now_ms(),
            processor=processor,
            query_source=config.query_source,
            project_path=config.project_path,
            tab_id=config.tab_id,
        )

    def _spawn_pty(self, config: ProcessConfig, processor: OutputProcessor, is_terminal: bool) -> ManagedProcess:
        if is_terminal:
            argv = [self.config.resolve_shell(config.shell)]
        else:
            argv = [config.command, *config.args]

        master_fd, slave_fd = os.openpty()
        try:
            _set_terminal_size(slave_fd, self.config.pty_cols, self.config.pty_rows)
            proc = subprocess.Popen(
                argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=config.cwd,
                env=self._build_env(config, use_pty=True),
                close_fds=True,
                start_new_session=True,
            )
        except Exception:
            for fd in (master_fd, slave_fd):
                try:
                    os.close(fd)
                except OSError:
                    pass
            raise

        try:
            os.close(slave_fd)
        except OSError:
            pass
        os.set_blocking(master_fd, False)

        entry = self._new_entry(config, processor, proc.pid, is_terminal)
        entry.pty_process = proc
        entry.master_fd = master_fd
        entry.decoder = codecs.getincrementaldecoder("utf-8")("replace")
        return entry

    async def _spawn_plain(self, config: ProcessConfig, processor: OutputProcessor) -> ManagedProcess:
        if not config.command:
            raise ValueError("No command given")

        proc = await asyncio.create_subprocess_exec(
            config.command,
            *config.args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=config.cwd,
            env=self._build_env(config, use_pty=False),
            start_new_session=True,
        )
        entry = self._new_entry(config, processor, proc.pid, is_terminal=False)
        entry.process = proc
        return entry

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # --- Output pumping ---

    def _emit(self, entry: ManagedProcess, event: ProcessEvent, *args: Any) -> None:
        if entry.superseded:
            return
        self.emit(event, entry.session_id, *args)

    def _emit_update(self, entry: ManagedProcess, update: OutputUpdate) -> None:
        if not update:
            return
        if update.session_id:
            self._emit(entry, ProcessEvent.SESSION_ID, update.session_id)
        for usage in update.usages:
            self._emit(entry, ProcessEvent.USAGE, usage)
        for error in update.errors:
            entry.error_emitted = True
            self._emit(entry, ProcessEvent.AGENT_ERROR, error)

    def _handle_stdout(self, entry: ManagedProcess, text: str) -> None:
        if not text:
            return
        self._emit(entry, ProcessEvent.DATA, text)
        self._emit_update(entry, entry.processor.feed_stdout(text))

    def _handle_stderr(self, entry: ManagedProcess, text: str) -> None:
        if not text:
            return
        entry.processor.feed_stderr(text)
        self._emit(entry, ProcessEvent.DATA, f"{self.config.stderr_prefix}{text}")

    def _on_pty_readable(self, entry: ManagedProcess) -> None:
        try:
            chunk = os.read(entry.master_fd, READ_CHUNK_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO once the slave side is closed
            chunk = b""

        if chunk:
            self._handle_stdout(entry, entry.decoder.decode(chunk))
            return

        loop = asyncio.get_running_loop()
        loop.remove_reader(entry.master_fd)
        self._handle_stdout(entry, entry.decoder.decode(b"", final=True))
        self._track(asyncio.create_task(self._reap_pty(entry)))

    async def _reap_pty(self, entry: ManagedProcess) -> None:
        loop = asyncio.get_running_loop()
        exit_code = await loop.run_in_executor(None, entry.pty_process.wait)
        try:
            os.close(entry.master_fd)
        except OSError:
            pass
        self._finalize(entry, exit_code)

    async def _pump(self, entry: ManagedProcess, stream: asyncio.StreamReader, is_stderr: bool) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")("replace")
        handle = self._handle_stderr if is_stderr else self._handle_stdout
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            handle(entry, decoder.decode(chunk))
        handle(entry, decoder.decode(b"", final=True))

    async def _run_plain(self, entry: ManagedProcess, prompt: str | None) -> None:
        proc = entry.process
        if prompt is not None:
            try:
                proc.stdin.write(prompt.encode("utf-8"))
                await proc.stdin.drain()
                proc.stdin.close()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.warning(f"Could not write prompt to session {entry.session_id}: {e}")

        # Exit is reported only after both streams are drained
        await asyncio.gather(
            self._pump(entry, proc.stdout, is_stderr=False),
            self._pump(entry, proc.stderr, is_stderr=True),
        )
        exit_code = await proc.wait()
        self._finalize(entry, exit_code)

    def _finalize(self, entry: ManagedProcess, exit_code: int) -> None:
        """Emit trailing events for a finished process, then ``exit``."""
        processor = entry.processor
        self._emit_update(entry, processor.flush())

        if not entry.error_emitted:
            error = processor.exit_error(exit_code)
            if error is not None:
                logger.warning(f"Session {entry.session_id} exited with {error.type.value}: {error.message}")
                self._emit(entry, ProcessEvent.AGENT_ERROR, error)

        if entry.is_batch_mode and (processor.result_seen or exit_code == 0):
            self._emit(
                entry,
                ProcessEvent.QUERY_COMPLETE,
                QueryCompleteData(
                    session_id=entry.session_id,
                    agent_type=entry.tool_type,
                    source=entry.query_source,
                    start_time=entry.start_time,
                    duration=max(0, _now_ms() - entry.start_time),
                    project_path=entry.project_path,
                    tab_id=entry.tab_id,
                ),
            )

        if self._processes.get(entry.session_id) is entry:
            del self._processes[entry.session_id]
        if self._exiting.get(entry.session_id) is entry:
            del self._exiting[entry.session_id]

        logger.debug(f"Session {entry.session_id} exited with code {exit_code}")
        self._emit(entry, ProcessEvent.EXIT, exit_code)

    # --- Control ---

    def write(self, session_id: str, data: str) -> bool:
        """Write to a session's stdin (or PTY). False for unknown sessions."""
        entry = self._processes.get(session_id)
        if entry is None:
            return False

        try:
            if entry.uses_pty:
                os.write(entry.master_fd, data.encode("utf-8"))
                return True
            stdin = entry.process.stdin
            if stdin is None or stdin.is_closing():
                return False
            stdin.write(data.encode("utf-8"))
            return True
        except OSError as e:
            logger.warning(f"Write to session {session_id} failed: {e}")
            return False

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        """Resize a PTY session's window. False for plain or unknown sessions."""
        entry = self._processes.get(session_id)
        if entry is None or not entry.uses_pty:
            return False

        try:
            _set_terminal_size(entry.master_fd, cols, rows)
        except OSError as e:
            logger.warning(f"Resize of session {session_id} failed: {e}")
            return False
        _signal_process_group(entry.pid, signal.SIGWINCH)
        return True

    def interrupt(self, session_id: str) -> bool:
        """Ask a session to stop its current work (^C on a PTY, SIGINT otherwise)."""
        entry = self._processes.get(session_id)
        if entry is None:
            return False
        if entry.uses_pty:
            return self.write(session_id, CTRL_C)
        return _signal_process_group(entry.pid, signal.SIGINT)

    def kill(self, session_id: str) -> bool:
        """Terminate a session.

        The entry leaves the table immediately; its ``exit`` event still
        arrives once the process is gone, unless the id has been respawned
        in the meantime.
        """
        entry = self._processes.pop(session_id, None)
        if entry is None:
            return False
        logger.info(f"Killing session {session_id} (pid={entry.pid})")
        self._exiting[session_id] = entry
        self._terminate(entry)
        return True

    def kill_all(self) -> None:
        for session_id in list(self._processes):
            self.kill(session_id)

    def _terminate(self, entry: ManagedProcess) -> None:
        if not entry.is_running():
            return
        _signal_process_group(entry.pid, signal.SIGTERM)
        self._track(asyncio.create_task(self._escalate_kill(entry)))

    async def _escalate_kill(self, entry: ManagedProcess) -> None:
        await asyncio.sleep(self.config.kill_grace_seconds)
        if entry.is_running():
            logger.warning(f"Session {entry.session_id} ignored SIGTERM, sending SIGKILL")
            _signal_process_group(entry.pid, signal.SIGKILL)

    # --- Queries ---

    def get(self, session_id: str) -> ProcessInfo | None:
        entry = self._processes.get(session_id)
        return entry.info() if entry else None

    def get_all(self) -> list[ProcessInfo]:
        return [entry.info() for entry in self._processes.values()]

    def tool_type_of(self, session_id: str) -> str | None:
        entry = self._processes.get(session_id)
        return entry.tool_type if entry else None

    # --- One-off commands ---

    async def run_command(
        self,
        session_id: str,
        command: str,
        cwd: str,
        shell: str | None = None,
    ) -> CommandResult:
        """Run a shell command without a PTY and capture its output.

        Output is also streamed as ``data`` events (stderr tagged) followed by
        ``exit`` on session_id. The command is not added to the process table.
        """
        shell_path = self.config.resolve_shell(shell)
        try:
            proc = await asyncio.create_subprocess_exec(
                shell_path,
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                start_new_session=True,
            )
        except OSError as e:
            logger.error(f"Failed to run command for session {session_id}: {e}")
            self.emit(ProcessEvent.EXIT, session_id, -1)
            return CommandResult(exit_code=-1, stderr=str(e))

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []

        async def collect(stream: asyncio.StreamReader, parts: list[str], prefix: str) -> None:
            decoder = codecs.getincrementaldecoder("utf-8")("replace")
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                text = decoder.decode(chunk, final=not chunk)
                if text:
                    parts.append(text)
                    self.emit(ProcessEvent.DATA, session_id, f"{prefix}{text}")
                if not chunk:
                    break

        await asyncio.gather(
            collect(proc.stdout, stdout_parts, ""),
            collect(proc.stderr, stderr_parts, self.config.stderr_prefix),
        )
        exit_code = await proc.wait()
        self.emit(ProcessEvent.EXIT, session_id, exit_code)
        return CommandResult(
            exit_code=exit_code,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
        )
