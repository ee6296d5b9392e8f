"""memex resume -- run an agent session with project memory restored."""

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
@click.option(
    "--tier",
    type=click.IntRange(1, 3),
    default=3,
    show_default=True,
    help="Context verbosity: 1=one line, 2=key facts, 3=full.",
)
@click.option(
    "--max-tokens",
    type=click.IntRange(min=1),
    default=None,
    help="Approximate token budget for the injected context (1 token ~ 4 chars).",
)
@click.option("--focus", "focus_topic", default=None, help="Set the focus topic and surface related memory first.")
@click.pass_context
def resume(
    ctx: click.Context,
    command: str,
    agent_args: str,
    snapshot_minutes: float | None,
    tier: int,
    max_tokens: int | None,
    focus_topic: str | None,
) -> None:
    """Start COMMAND (default: claude) with context from earlier sessions."""
    from memex.cli import (
        _build_runner,
        _recover,
        _split_args,
        _snapshot_seconds,
        _store_session,
        _warn_without_credentials,
    )
    from memex.integrations.git import ensure_gitignore
    from memex.models.config import ContextOptions
    from memex.session.resume import ResumeInjection

    with _store_session(ctx) as (store, console):
        if ensure_gitignore(store.project_path):
            console.print("[dim]Added .memex/ to .gitignore[/dim]")
        runner = _build_runner(ctx, store)
        _warn_without_credentials(runner, console)
        _recover(runner, console)

        if focus_topic:
            console.print(f'[dim]Focus: "{escape(focus_topic)}" (saved to memory)[/dim]')
        if snapshot_minutes:
            console.print(f"[dim]Auto-snapshot every {snapshot_minutes:g} min[/dim]")
        if max_tokens:
            console.print(f"[dim]Token budget: ~{max_tokens} tokens[/dim]")

        def on_inject(injection: ResumeInjection) -> None:
            target = injection.claude_md_path or injection.resume_path
            console.print(f"[dim]Context injected into {target}[/dim]")

        result = runner.resume(
            command,
            _split_args(agent_args),
            options=ContextOptions(tier=tier, max_tokens=max_tokens),  # type: ignore[arg-type]
            focus=focus_topic,
            on_inject=on_inject,
            snapshot_interval=_snapshot_seconds(snapshot_minutes),
        )
        format_session_result(result, console)
