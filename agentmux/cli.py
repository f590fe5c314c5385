"""CLI entry point for agentmux.

Commands:
- agentmux parse: Show how an agent's JSONL output is normalized
- agentmux resolve: Classify a session id
- agentmux run: Run one agent process and stream its events
- agentmux stats: Summarize recorded query events
"""

import asyncio
import logging
import sys
import uuid
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from agentmux.core.config import ConfigError, SupervisorConfig, load_config
from agentmux.core.events import ProcessEvent
from agentmux.core.models import AgentError, QueryCompleteData, UsageStats
from agentmux.core.process_manager import ProcessConfig, ProcessManager
from agentmux.core.session_identity import resolve_session_id
from agentmux.metrics.stats_store import DEFAULT_STATS_DB_PATH, StatsDatabase, StatsStoreError
from agentmux.metrics.usage import calculate_context_tokens, context_usage_percent
from agentmux.parsers import ParserNotFoundError, get_output_parser

console = Console()


def _load_config_or_exit(config_path: str | None) -> SupervisorConfig:
    try:
        return load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        sys.exit(1)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", type=click.Path(), help="Path to config.yaml")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """agentmux - supervisor for CLI coding agents.

    Runs Claude Code, Codex, OpenCode and terminals as managed processes
    and normalizes their output into one event stream.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command()
@click.argument("agent")
@click.argument("output_file", type=click.Path(exists=True, dir_okay=False))
def parse(agent: str, output_file: str) -> None:
    """Parse captured agent output and show the normalized events.

    Example:
        agentmux parse codex turn.jsonl
    """
    try:
        parser = get_output_parser(agent)
    except ParserNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    table = Table(title=f"{agent} events")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Session", style="magenta")
    table.add_column("Detail", style="white")

    text = Path(output_file).read_text(encoding="utf-8", errors="replace")
    for number, line in enumerate(text.splitlines(), start=1):
        event = parser.parse_line(line)
        if event is None:
            continue
        if event.tool_state is not None:
            detail = f"{event.tool_name or ''} [{event.tool_state.status}]"
        elif event.usage is not None:
            detail = f"in={event.usage.input_tokens} out={event.usage.output_tokens}"
        else:
            detail = (event.text or "")[:80]
        table.add_row(str(number), event.type.value, event.session_id or "", detail)

        error = parser.detect_error_from_line(line)
        if error is not None:
            table.add_row("", "[red]agent-error[/red]", "", f"{error.type.value}: {error.message}")

    console.print(table)


@main.command()
@click.argument("session_id")
def resolve(session_id: str) -> None:
    """Show how a session id is routed."""
    identity = resolve_session_id(session_id)

    table = Table(title="Session Identity", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Kind", identity.kind.value)
    table.add_row("Group chat", identity.group_chat_id or "-")
    table.add_row("Participant", identity.participant_name or "-")
    table.add_row("Synthesis", "yes" if identity.is_synthesis else "no")
    console.print(table)


def _usage_table(usage: UsageStats) -> Table:
    table = Table(title="Usage")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white", justify="right")
    table.add_row("Input tokens", str(usage.input_tokens))
    table.add_row("Output tokens", str(usage.output_tokens))
    if usage.reasoning_tokens is not None:
        table.add_row("Reasoning tokens", str(usage.reasoning_tokens))
    table.add_row("Cache read", str(usage.cache_read_input_tokens))
    table.add_row("Cache creation", str(usage.cache_creation_input_tokens))
    table.add_row("Context tokens", str(calculate_context_tokens(usage)))
    table.add_row("Context used", f"{context_usage_percent(usage)}%")
    table.add_row("Cost", f"${usage.total_cost_usd:.4f}" if usage.has_cost_data else "n/a")
    return table


async def _run_agent(manager: ProcessManager, config: ProcessConfig, quiet: bool) -> int:
    loop = asyncio.get_running_loop()
    exited: asyncio.Future[int] = loop.create_future()
    last_usage: list[UsageStats] = []

    def on_data(session_id: str, data: str) -> None:
        if not quiet:
            console.out(data, end="", highlight=False)

    def on_session_id(session_id: str, agent_session_id: str) -> None:
        console.print(f"[magenta]session[/magenta] {agent_session_id}")

    def on_usage(session_id: str, usage: UsageStats) -> None:
        last_usage[:] = [usage]

    def on_agent_error(session_id: str, error: AgentError) -> None:
        style = "yellow" if error.recoverable else "red"
        console.print(f"[{style}]{error.type.value}[/{style}] {error.message}")

    def on_query_complete(session_id: str, data: QueryCompleteData) -> None:
        console.print(f"[green]turn complete[/green] in {data.duration}ms")

    def on_exit(session_id: str, exit_code: int) -> None:
        if not exited.done():
            exited.set_result(exit_code)

    manager.on(ProcessEvent.DATA, on_data)
    manager.on(ProcessEvent.SESSION_ID, on_session_id)
    manager.on(ProcessEvent.USAGE, on_usage)
    manager.on(ProcessEvent.AGENT_ERROR, on_agent_error)
    manager.on(ProcessEvent.QUERY_COMPLETE, on_query_complete)
    manager.on(ProcessEvent.EXIT, on_exit)

    result = await manager.spawn(config)
    if not result.success:
        console.print(f"[red]Failed to start {config.command or config.tool_type}[/red]")
        return 127

    try:
        exit_code = await exited
    except asyncio.CancelledError:
        manager.kill_all()
        raise

    if last_usage:
        console.print(_usage_table(last_usage[0]))
    return exit_code


@main.command(context_settings={"ignore_unknown_options": True})
@click.argument("agent")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.option("--session-id", "-s", help="Session id (generated if not provided)")
@click.option("--cwd", type=click.Path(exists=True, file_okay=False), default=".", help="Working directory")
@click.option("--prompt", "-p", help="Prompt written to the agent's stdin")
@click.option("--pty", "use_pty", is_flag=True, help="Run under a pseudo-terminal")
@click.option("--quiet", "-q", is_flag=True, help="Do not echo raw output")
@click.pass_context
def run(
    ctx: click.Context,
    agent: str,
    command: tuple[str, ...],
    session_id: str | None,
    cwd: str,
    prompt: str | None,
    use_pty: bool,
    quiet: bool,
) -> None:
    """Run one agent process and stream its normalized events.

    Example:
        agentmux run codex -- codex exec --json "fix the tests"
    """
    config = _load_config_or_exit(ctx.obj.get("config_path"))
    if not command and agent != "terminal":
        console.print("[red]Error:[/red] no command given")
        sys.exit(2)

    process_config = ProcessConfig(
        session_id=session_id or f"{agent}-{uuid.uuid4().hex[:8]}",
        tool_type=agent,
        cwd=str(Path(cwd).resolve()),
        command=command[0] if command else "",
        args=list(command[1:]),
        requires_pty=use_pty,
        is_batch_mode=agent != "terminal",
        prompt=prompt,
    )

    manager = ProcessManager(config)
    exit_code = asyncio.run(_run_agent(manager, process_config, quiet))
    sys.exit(exit_code if exit_code >= 0 else 128 - exit_code)


@main.command()
@click.option("--days", type=int, default=30, help="Number of days to summarize")
@click.pass_context
def stats(ctx: click.Context, days: int) -> None:
    """Summarize recorded query events."""
    config = _load_config_or_exit(ctx.obj.get("config_path"))
    db_path = Path(config.stats_db_path or DEFAULT_STATS_DB_PATH)

    if not db_path.exists():
        console.print("[yellow]No stats database found.[/yellow]")
        return

    try:
        db = StatsDatabase(db_path)
        db.initialize()
        aggregation = db.get_aggregation(days=days)
    except StatsStoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(
        f"[bold]{aggregation.total_queries}[/bold] queries in the last {days} days, "
        f"avg {aggregation.avg_duration / 1000:.1f}s"
    )

    table = Table(title="By Agent")
    table.add_column("Agent", style="cyan")
    table.add_column("Queries", justify="right")
    table.add_column("Total time", justify="right")
    for agent_type, totals in aggregation.by_agent.items():
        table.add_row(agent_type, str(totals.count), f"{totals.duration / 1000:.1f}s")
    console.print(table)

    if aggregation.by_source:
        sources = ", ".join(f"{source}: {count}" for source, count in aggregation.by_source.items())
        console.print(f"Sources: {sources}")


if __name__ == "__main__":
    main()
