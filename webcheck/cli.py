"""CLI entry point for webcheck."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
import pydantic
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from webcheck.errors import WebcheckError
from webcheck.models.config import WebcheckConfig
from webcheck.orchestrator import Orchestrator

console = Console()

KIND_CHOICES = click.Choice(
    ["deterministic", "goal_directed", "traditional", "agentic"], case_sensitive=False,
)
STATUS_STYLES = {
    "running": "yellow",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
    "passed": "green",
    "skipped": "yellow",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _load_orchestrator(ctx: click.Context) -> Orchestrator:
    path = ctx.obj["config_path"]
    try:
        cfg = WebcheckConfig.load_or_default(path)
    except (pydantic.ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]Invalid config file {path}:[/red] {e}")
        sys.exit(1)
    return Orchestrator(cfg)


def _read_json_file(path: str) -> dict:
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read instructions file {path}:[/red] {e}")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", "-c", "config_path", default="webcheck.json", help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: str) -> None:
    """Stored-configuration web test runner"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create a default configuration file."""
    config_path = Path(ctx.obj["config_path"])
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    WebcheckConfig().save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nRegister a test configuration with:")
    console.print("  [blue]webcheck config add --pattern example.com/login "
                  "--name Login --kind deterministic --file login.json[/blue]")


@cli.command()
@click.argument("url")
@click.option("--kind", "-k", type=KIND_CHOICES, default="deterministic", help="Test kind")
@click.option("--file", "-f", "instructions_file", help="Inline test case / goal JSON")
@click.option("--no-stored-config", is_flag=True, help="Ignore stored configurations")
@click.pass_context
def run(ctx: click.Context, url: str, kind: str, instructions_file: str | None,
        no_stored_config: bool) -> None:
    """Run a test against URL."""
    orchestrator = _load_orchestrator(ctx)
    instructions = _read_json_file(instructions_file) if instructions_file else None
    try:
        result = asyncio.run(orchestrator.run_test(
            url, kind, instructions=instructions, use_stored_config=not no_stored_config,
        ))
    except WebcheckError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    headline = "[bold green]Test Passed[/bold green]" if result.success \
        else "[bold red]Test Failed[/bold red]"
    console.print(f"\n{headline}")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Session ID", result.session_id)
    table.add_row("Duration", f"{result.execution_time_ms}ms")
    table.add_row("Units", str(len(result.results)))
    table.add_row("Log entries", str(len(result.logs)))
    if result.attempts:
        table.add_row("Attempts", str(result.attempts))
    table.add_row("Screenshots", str(len(result.screenshots)))
    if result.error_summary:
        table.add_row("Error", f"[red]{result.error_summary}[/red]")
    console.print(table)
    if not result.success:
        sys.exit(1)


@cli.group()
def config() -> None:
    """Manage stored test configurations."""
    pass


@config.command("add")
@click.option("--pattern", "-p", required=True, help="URL pattern, '*' is a wildcard")
@click.option("--name", "-n", required=True, help="Configuration name")
@click.option("--kind", "-k", type=KIND_CHOICES, required=True, help="Test kind")
@click.option("--file", "-f", "instructions_file", required=True,
              help="Test case / goal JSON file")
@click.pass_context
def config_add(ctx: click.Context, pattern: str, name: str, kind: str,
               instructions_file: str) -> None:
    """Store a configuration for URLs matching a pattern."""
    orchestrator = _load_orchestrator(ctx)
    instructions = _read_json_file(instructions_file)
    try:
        config_id = asyncio.run(orchestrator.add_configuration(pattern, name, instructions, kind))
    except (WebcheckError, pydantic.ValidationError) as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]Added configuration #{config_id}:[/green] {name} ({pattern})")


@config.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include disabled configurations")
@click.pass_context
def config_list(ctx: click.Context, show_all: bool) -> None:
    """List stored configurations."""
    orchestrator = _load_orchestrator(ctx)
    configs = asyncio.run(orchestrator.list_configurations(active_only=not show_all))
    if not configs:
        console.print("[yellow]No configurations stored[/yellow]")
        return
    table = Table(title="Test Configurations")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Pattern")
    table.add_column("Kind")
    table.add_column("Active")
    for c in configs:
        table.add_row(str(c.id), c.name, c.url_pattern, c.test_kind,
                      "[green]yes[/green]" if c.is_active else "[dim]no[/dim]")
    console.print(table)


@config.command("find")
@click.argument("url")
@click.option("--kind", "-k", type=KIND_CHOICES, help="Test kind")
@click.pass_context
def config_find(ctx: click.Context, url: str, kind: str | None) -> None:
    """Show which configuration would run for URL."""
    orchestrator = _load_orchestrator(ctx)
    match = asyncio.run(orchestrator.find_configuration(url, kind))
    if match is None:
        console.print(f"[yellow]No configuration matches {url}[/yellow]")
        sys.exit(1)
    console.print(f"[green]#{match.id}[/green] {match.name} "
                  f"(pattern={match.url_pattern!r}, kind={match.test_kind})")


@config.command("disable")
@click.argument("config_id", type=int)
@click.pass_context
def config_disable(ctx: click.Context, config_id: int) -> None:
    """Deactivate a stored configuration."""
    orchestrator = _load_orchestrator(ctx)
    if not asyncio.run(orchestrator.disable_configuration(config_id)):
        console.print(f"[red]Configuration not found: {config_id}[/red]")
        sys.exit(1)
    console.print(f"[green]Disabled configuration #{config_id}[/green]")


@cli.group()
def session() -> None:
    """Inspect and manage test sessions."""
    pass


@session.command("list")
@click.option("--limit", "-l", type=int, help="Maximum sessions to show")
@click.pass_context
def session_list(ctx: click.Context, limit: int | None) -> None:
    """List recent sessions, newest first."""
    orchestrator = _load_orchestrator(ctx)
    sessions = asyncio.run(orchestrator.list_sessions(limit))
    if not sessions:
        console.print("[yellow]No sessions recorded[/yellow]")
        return
    table = Table(title="Test Sessions")
    table.add_column("Session ID", style="bold")
    table.add_column("URL")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Started")
    for s in sessions:
        table.add_row(s.id, s.url, s.test_kind, _styled(s.status), s.start_time)
    console.print(table)


@session.command("show")
@click.argument("session_id")
@click.option("--logs", "show_logs", is_flag=True, help="Print the action log")
@click.pass_context
def session_show(ctx: click.Context, session_id: str, show_logs: bool) -> None:
    """Show one session with its results and statistics."""
    orchestrator = _load_orchestrator(ctx)
    try:
        detail = asyncio.run(orchestrator.get_session_detail(session_id))
    except WebcheckError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    s = detail["session"]
    stats = detail["stats"]
    console.print(f"[bold]{s.id}[/bold] {s.url} ({s.test_kind}) {_styled(s.status)}")
    console.print(f"  started {s.start_time}, ended {s.end_time or '-'}")
    if s.error_summary:
        console.print(f"  [red]{s.error_summary}[/red]")
    summary = stats.results_summary
    console.print(
        f"  {stats.total_actions} actions, {stats.total_errors} errors, "
        f"avg {stats.avg_execution_time}ms; "
        f"{summary.get('passed', 0)} passed, {summary.get('failed', 0)} failed, "
        f"{summary.get('skipped', 0)} skipped"
    )

    table = Table(title="Results")
    table.add_column("Test", style="bold")
    table.add_column("Status")
    table.add_column("Error")
    for r in detail["results"]:
        table.add_row(r.test_name, _styled(r.status), r.error_message or "")
    console.print(table)

    if show_logs:
        log_table = Table(title="Action Log")
        log_table.add_column("#")
        log_table.add_column("Action", style="bold")
        log_table.add_column("Time")
        log_table.add_column("Error")
        for entry in detail["logs"]:
            elapsed = f"{entry.execution_time_ms}ms" if entry.execution_time_ms is not None else ""
            log_table.add_row(str(entry.id), entry.action_type, elapsed,
                              f"[red]{entry.error}[/red]" if entry.error else "")
        console.print(log_table)


@session.command("cancel")
@click.argument("session_id")
@click.pass_context
def session_cancel(ctx: click.Context, session_id: str) -> None:
    """Mark a session as cancelled."""
    orchestrator = _load_orchestrator(ctx)
    try:
        asyncio.run(orchestrator.cancel_session(session_id))
    except WebcheckError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[green]Cancelled {session_id}[/green]")


@session.command("cleanup")
@click.option("--days", "-d", type=int, help="Delete sessions older than this many days")
@click.pass_context
def session_cleanup(ctx: click.Context, days: int | None) -> None:
    """Delete old sessions with their logs and results."""
    orchestrator = _load_orchestrator(ctx)
    removed = asyncio.run(orchestrator.cleanup_sessions(days))
    console.print(f"[green]Removed {removed} session(s)[/green]")


if __name__ == "__main__":
    cli()
