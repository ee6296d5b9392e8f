"""memex sessions -- list or prune past sessions."""

from __future__ import annotations

import click

from memex.cli.formatting import format_sessions


@click.command()
@click.option("-n", "--limit", type=click.IntRange(min=1), default=20, show_default=True, help="Number of sessions to show.")
@click.option("--prune", "prune_days", type=click.IntRange(min=0), default=None, help="Delete sessions older than N days.")
@click.pass_context
def sessions(ctx: click.Context, limit: int, prune_days: int | None) -> None:
    """List past sessions for this project, newest first."""
    from memex.cli import _store_session

    with _store_session(ctx) as (store, console):
        if prune_days is not None:
            removed = store.prune_sessions(prune_days)
            if removed:
                console.print(f"[green]Removed {removed} session(s) older than {prune_days} days.[/green]")
            else:
                console.print(f"[dim]No sessions older than {prune_days} days.[/dim]")
            return
        format_sessions(store.list_sessions(limit=limit), console)
