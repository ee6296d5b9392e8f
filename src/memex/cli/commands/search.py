"""memex search -- find past sessions by words in their summaries."""

from __future__ import annotations

import click

from memex.cli.formatting import format_search_results


@click.command()
@click.argument("query")
@click.option("-n", "--limit", type=click.IntRange(min=1), default=20, show_default=True, help="Maximum number of results.")
@click.pass_context
def search(ctx: click.Context, query: str, limit: int) -> None:
    """Search session summaries for any word of QUERY."""
    from memex.cli import _store_session

    if not query.strip():
        raise click.BadParameter("query must not be empty", param_hint="QUERY")

    with _store_session(ctx) as (store, console):
        format_search_results(query, store.search_sessions(query, limit=limit), console)
