"""memex start -- run an agent session with memory tracking."""

from __future__ import annotations

import click
from rich.markup import escape

from memex.cli.formatting import format_session_result


@click.command()
@click.argument("command", default="claude")
@click.option("--args", "agent_args", default="", help="Extra arguments for the agent command.")
@click.option(
    "--snapshot",
    "snapshot_minutes",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Snapshot the running session into memory every N minutes.",
)
@click.pass_context
def start(
    ctx: click.Context, command: str, agent_args: str, snapshot_minutes: float | None
) -> None:
    """Start COMMAND (default: claude) and record the session."""
    from memex.cli import (
        _build_runner,
        _recover,
        _split_args,
        _snapshot_seconds,
        _store_session,
        _warn_without_credentials,
    )
    from memex.integrations.git import ensure_gitignore

    with _store_session(ctx) as (store, console):
        if ensure_gitignore(store.project_path):
            console.print("[dim]Added .memex/ to .gitignore[/dim]")
        runner = _build_runner(ctx, store)
        _warn_without_credentials(runner, console)
        _recover(runner, console)

        memory = store.load()
        if memory is None:
            store.init()
            console.print("[dim]No memory found; initialized fresh.[/dim]")
        else:
            console.print(f"[dim]Focus: {escape(memory.current_focus) or 'not set'}[/dim]")

        if snapshot_minutes:
            console.print(f"[dim]Auto-snapshot every {snapshot_minutes:g} min[/dim]")
        result = runner.start(
            command, _split_args(agent_args), snapshot_interval=_snapshot_seconds(snapshot_minutes)
        )
        format_session_result(result, console)
