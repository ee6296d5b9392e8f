"""memex focus -- show or change the current focus topic."""

from __future__ import annotations

import click
from rich.markup import escape


@click.command()
@click.argument("topic", required=False)
@click.option("--list", "show_list", is_flag=True, help="Show the current focus and past topics.")
@click.option("--clear", "clear_focus", is_flag=True, help="Clear the current focus.")
@click.pass_context
def focus(ctx: click.Context, topic: str | None, show_list: bool, clear_focus: bool) -> None:
    """Set the current focus topic, e.g. memex focus "auth bug"."""
    from memex.cli import _store_session
    from memex.operations.focus import set_focus

    with _store_session(ctx) as (store, console):
        memory = store.load()
        if memory is None:
            console.print("[yellow]No memory found.[/yellow] Run `memex start` first.")
            return

        if clear_focus:
            store.save(set_focus(memory, ""))
            console.print("Focus cleared.")
            return

        if topic:
            updated = set_focus(memory, topic)
            store.save(updated)
            console.print(f"[bold]Current:[/bold] [green]{escape(updated.current_focus)}[/green]")
            if updated.focus_history:
                console.print(f"[dim]Previous: {escape(updated.focus_history[-1])}[/dim]")
            return

        if memory.current_focus:
            console.print(f"[bold]Current:[/bold] [green]{escape(memory.current_focus)}[/green]")
        else:
            console.print("[dim]Current: (none)[/dim]")
        if show_list:
            if memory.focus_history:
                console.print("\n[dim]Past topics (most recent first):[/dim]")
                for i, past in enumerate(reversed(memory.focus_history), 1):
                    console.print(f"  [dim]{i}. {escape(past)}[/dim]")
            else:
                console.print("\n[dim]No focus history yet.[/dim]")
