"""Memex CLI -- persistent memory for interactive terminal agents.

This module is never imported from memex/__init__.py. It is only loaded
via the ``memex`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
import shlex
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Callable

import click

from memex._version import __version__
from memex.cli.formatting import format_error, format_recovery, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console

    from memex.session.runner import SessionRunner
    from memex.storage.store import MemoryStore

RunnerFactory = Callable[["MemoryStore"], "SessionRunner"]


@click.group()
@click.option(
    "-p",
    "--project",
    default=".",
    envvar="MEMEX_PROJECT",
    type=click.Path(file_okay=False),
    help="Project directory (defaults to the current directory).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.version_option(__version__, prog_name="memex")
@click.pass_context
def cli(ctx: click.Context, project: str, verbose: bool) -> None:
    """Memex: persistent memory for any AI terminal agent."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["project"] = str(Path(project).resolve())


def _open_store(ctx: click.Context) -> MemoryStore:
    from memex.storage.store import MemoryStore

    return MemoryStore.open(ctx.obj["project"])


def _build_runner(ctx: click.Context, store: MemoryStore) -> SessionRunner:
    """SessionRunner for ``store``; ``ctx.obj["runner_factory"]`` overrides it."""
    factory: RunnerFactory | None = ctx.obj.get("runner_factory")
    if factory is not None:
        runner = factory(store)
    else:
        from memex.models.config import MemexConfig
        from memex.session.runner import SessionRunner

        runner = SessionRunner(store, config=MemexConfig.from_env(store.project_path))
    ctx.call_on_close(runner.close)
    return runner


@contextmanager
def _store_session(ctx: click.Context) -> Iterator[tuple[MemoryStore, Console]]:
    """Open the project's store, yield (store, console), and handle cleanup.

    Ensures the store is closed on exit and formats exceptions as CLI errors.
    """
    console = get_console()
    try:
        store = _open_store(ctx)
        try:
            yield store, console
        finally:
            store.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


def _recover(runner: SessionRunner, console: Console) -> None:
    """Run startup recovery, reporting it when something was recovered."""

    def notice(marker: object) -> None:
        console.print("[yellow]Recovering interrupted session...[/yellow]")

    result = runner.recover(on_recover=notice)
    if result is not None:
        format_recovery(result, console)


def _split_args(args: str) -> list[str]:
    return shlex.split(args) if args else []


def _snapshot_seconds(minutes: float | None) -> float | None:
    return minutes * 60 if minutes else None


def _warn_without_credentials(runner: SessionRunner, console: Console) -> None:
    if not runner.config.has_credentials:
        console.print(
            "[yellow]No AI provider configured.[/yellow] The session will be recorded "
            "but not compressed.\n"
            "[dim]Set ANTHROPIC_API_KEY, OPENAI_API_KEY or LITELLM_API_KEY "
            "and run `memex compress` afterwards.[/dim]"
        )


# Register subcommands after cli group is defined
from memex.cli.commands.start import start  # noqa: E402
from memex.cli.commands.resume import resume  # noqa: E402
from memex.cli.commands.compress import compress  # noqa: E402
from memex.cli.commands.snapshot import snapshot  # noqa: E402
from memex.cli.commands.status import status  # noqa: E402
from memex.cli.commands.focus import focus  # noqa: E402
from memex.cli.commands.sessions import sessions  # noqa: E402
from memex.cli.commands.show import show  # noqa: E402
from memex.cli.commands.search import search  # noqa: E402
from memex.cli.commands.context import context  # noqa: E402
from memex.cli.commands.clear import clear  # noqa: E402

cli.add_command(start)
cli.add_command(resume)
cli.add_command(compress)
cli.add_command(snapshot)
cli.add_command(status)
cli.add_command(focus)
cli.add_command(sessions)
cli.add_command(show)
cli.add_command(search)
cli.add_command(context)
cli.add_command(clear)
