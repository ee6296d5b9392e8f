"""memex snapshot -- update memory from the running session."""

from __future__ import annotations

import click

from memex.cli.formatting import format_outcome


@click.command()
@click.pass_context
def snapshot(ctx: click.Context) -> None:
    """Snapshot memory mid-session (safe to call any time)."""
    from memex.cli import _build_runner, _store_session
    from memex.exceptions import NoActiveSessionError

    with _store_session(ctx) as (store, console):
        runner = _build_runner(ctx, store)
        try:
            outcome = runner.snapshot()
        except NoActiveSessionError:
            console.print("[dim]No active session; nothing to snapshot.[/dim]")
            return
        format_outcome(outcome, console)
