"""memex status -- show project memory."""

from __future__ import annotations

import json

import click

from memex.cli.formatting import format_memory


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output memory as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the current memory for this project."""
    from memex.cli import _store_session

    with _store_session(ctx) as (store, console):
        memory = store.load()
        if memory is None:
            if as_json:
                click.echo(json.dumps({"error": "No memory found"}))
            else:
                console.print("[yellow]No memory found.[/yellow] Run `memex start` to begin tracking.")
            return

        session_count = len(store.list_sessions(limit=None))
        if as_json:
            data = memory.model_dump(mode="json", by_alias=True)
            data["sessionCount"] = session_count
            click.echo(json.dumps(data, indent=2))
            return

        format_memory(memory, console)
        console.print(f"\n[dim]Sessions recorded: {session_count}[/dim]")
