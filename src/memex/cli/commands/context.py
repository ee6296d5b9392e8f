"""memex context -- print the context block a resume would inject."""

from __future__ import annotations

import click


@click.command()
@click.option("--tier", type=click.IntRange(1, 3), default=3, show_default=True, help="Context verbosity.")
@click.option("--max-tokens", type=click.IntRange(min=1), default=None, help="Approximate token budget.")
@click.option("--focus", "focus_topic", default=None, help="Order memory by relevance to this topic.")
@click.option("--resume", "as_resume", is_flag=True, help="Wrap it in the resume document.")
@click.pass_context
def context(
    ctx: click.Context,
    tier: int,
    max_tokens: int | None,
    focus_topic: str | None,
    as_resume: bool,
) -> None:
    """Print project memory as a bounded context block."""
    from memex.cli import _store_session
    from memex.models.config import ContextOptions
    from memex.operations.context import build_context, build_resume_content

    with _store_session(ctx) as (store, console):
        memory = store.load()
        if memory is None:
            console.print("[yellow]No memory found.[/yellow] Run `memex start` first.")
            return
        options = ContextOptions(
            tier=tier,  # type: ignore[arg-type]
            max_tokens=max_tokens,
            focus=focus_topic or memory.current_focus or None,
        )
        render = build_resume_content if as_resume else build_context
        click.echo(render(memory, options))
