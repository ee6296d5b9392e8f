"""memex show -- show one past session in full."""

from __future__ import annotations

import click

from memex.cli.formatting import format_session_detail


@click.command()
@click.argument("session_id", type=int)
@click.pass_context
def show(ctx: click.Context, session_id: int) -> None:
    """Show summary and conversation of session SESSION_ID."""
    from memex.cli import _store_session

    with _store_session(ctx) as (store, console):
        format_session_detail(store.get_session(session_id), console)
