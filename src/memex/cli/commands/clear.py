"""memex clear -- forget this project's memory."""

from __future__ import annotations

import click


@click.command()
@click.option("--keep-sessions", is_flag=True, help="Keep session history; only reset memory fields.")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def clear(ctx: click.Context, keep_sessions: bool, yes: bool) -> None:
    """Clear all memory for this project."""
    from memex.cli import _store_session

    with _store_session(ctx) as (store, console):
        if not store.exists():
            console.print("[yellow]No memory to clear.[/yellow]")
            return
        if not yes and not click.confirm("Clear project memory?", default=False):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        store.clear(keep_sessions=keep_sessions)
        if keep_sessions:
            console.print("[green]Memory fields cleared (session history preserved).[/green]")
        else:
            console.print("[green]Memory cleared.[/green]")
