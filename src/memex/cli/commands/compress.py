"""memex compress -- compress the latest session log by hand."""

from __future__ import annotations

import click

from memex.cli.formatting import format_compression_error, format_outcome


@click.command()
@click.pass_context
def compress(ctx: click.Context) -> None:
    """Re-compress the latest session into memory.

    Use this after a failed compression; the raw log is always kept.
    """
    from memex.cli import _build_runner, _store_session
    from memex.exceptions import CompressionError, NoSessionLogsError

    with _store_session(ctx) as (store, console):
        runner = _build_runner(ctx, store)
        try:
            outcome = runner.compress_latest()
        except NoSessionLogsError:
            console.print("[yellow]No session logs found.[/yellow]")
            return
        except CompressionError as e:
            format_compression_error(e, console)
            raise SystemExit(1) from None
        format_outcome(outcome, console)
