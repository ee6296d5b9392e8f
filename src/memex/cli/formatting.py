"""Rich formatting helpers for the Memex CLI.

Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from memex.models.compression import CompressionStatus

if TYPE_CHECKING:
    from memex.exceptions import CompressionError
    from memex.models.compression import CompressionOutcome
    from memex.models.memory import ProjectMemory
    from memex.models.session import SessionRecord, SessionSearchHit
    from memex.session.markers import RecoveryResult
    from memex.session.runner import SessionResult


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_timestamp(value: Optional[str]) -> str:
    parsed = _parse_iso(value)
    return parsed.astimezone().strftime("%Y-%m-%d %H:%M") if parsed else (value or "")


def format_duration(started: Optional[str], ended: Optional[str]) -> str:
    start, end = _parse_iso(started), _parse_iso(ended)
    if start is None or end is None:
        return "ongoing"
    seconds = max(int((end - start).total_seconds()), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def _truncate(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


def format_memory(memory: ProjectMemory, console: Console) -> None:
    """Display project memory."""
    console.print(f"[bold]{escape(memory.project_name)}[/bold]  [dim]{escape(memory.project_path)}[/dim]")
    console.print(f"  Focus:   {escape(memory.current_focus) if memory.current_focus else '[dim]not set[/dim]'}")
    if memory.last_updated:
        console.print(f"  Updated: [dim]{format_timestamp(memory.last_updated)}[/dim]")
    if memory.description:
        console.print()
        console.print(escape(memory.description))
    if memory.stack:
        console.print(f"\n[bold]Stack:[/bold] {escape(', '.join(memory.stack))}")

    sections = [
        ("Pending tasks", memory.pending_tasks),
        ("Gotchas", memory.gotchas),
        ("Key decisions", [d.decision for d in memory.decisions]),
        ("Important files", [f.file_path for f in memory.important_files]),
    ]
    for title, items in sections:
        if items:
            console.print(f"\n[bold]{title}:[/bold]")
            for item in items:
                console.print(f"  - {escape(item)}")

    if memory.recent_sessions:
        console.print("\n[bold]Recent sessions:[/bold]")
        for entry in reversed(memory.recent_sessions):
            marker = "[red]failed[/red] " if entry.failed else ""
            console.print(
                f"  [dim]{format_timestamp(entry.date)}[/dim] {marker}{escape(_truncate(entry.summary, 100))}"
            )


def format_sessions(records: list[SessionRecord], console: Console) -> None:
    """Display session records as a compact table."""
    if not records:
        console.print("[dim]No sessions recorded yet. Run `memex start` to begin.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Started", style="dim")
    table.add_column("Agent", style="magenta")
    table.add_column("Duration")
    table.add_column("Summary")

    for record in records:
        duration = format_duration(record.started_at, record.ended_at)
        summary = escape(_truncate(record.summary, 80)) if record.summary else "[dim]no summary[/dim]"
        if record.failed:
            summary = f"[red]failed[/red] {summary}"
        table.add_row(
            f"#{record.id}",
            format_timestamp(record.started_at),
            escape(record.agent_command),
            duration if record.is_finalized else "[yellow]ongoing[/yellow]",
            summary,
        )

    console.print(table)


def format_search_results(query: str, hits: list[SessionSearchHit], console: Console) -> None:
    """Display search hits with their summary excerpts."""
    if not hits:
        console.print(f'[yellow]No sessions match "{escape(query)}".[/yellow]')
        return

    console.print(f'[bold magenta]Search: "{escape(query)}"[/bold magenta]\n')
    for hit in hits:
        record = hit.record
        console.print(
            f"[cyan]#{record.id}[/cyan]  [dim]{format_timestamp(record.started_at)}[/dim]  "
            f"[magenta]{escape(record.agent_command)}[/magenta]"
        )
        console.print(f"   {escape(hit.snippet)}\n")
    console.print(f"[dim]{len(hits)} result(s). Use `memex show <id>` for details.[/dim]")


def format_session_detail(record: SessionRecord, console: Console) -> None:
    """Display one session with its conversation turns."""
    console.print(f"[bold]Session #{record.id}[/bold]")
    console.print(f"  Agent:    {escape(record.agent_command)}")
    console.print(f"  Started:  {format_timestamp(record.started_at)}")
    if record.ended_at:
        console.print(f"  Ended:    {format_timestamp(record.ended_at)}")
        console.print(f"  Duration: {format_duration(record.started_at, record.ended_at)}")
    if record.log_path:
        console.print(f"  Log file: [dim]{escape(record.log_path)}[/dim]")
    if record.summary:
        style = "red" if record.failed else "bold"
        console.print(f"\n[{style}]Summary:[/{style}] {escape(record.summary)}")

    if not record.turns:
        console.print("\n[dim]No conversation turns recorded for this session.[/dim]")
        return

    console.print(f"\n[bold]Conversation ({len(record.turns)} turns):[/bold]")
    for turn in record.turns:
        label = "[green]You[/green]" if turn.role == "user" else "[blue]Agent[/blue]"
        console.print(f"\n{label}")
        for line in turn.content.splitlines():
            console.print(f"    {escape(line)}", highlight=False)


def format_outcome(outcome: CompressionOutcome, console: Console) -> None:
    """Display the result of a compression run."""
    if outcome.status is CompressionStatus.TOO_SHORT:
        console.print("[dim]Session too short to compress.[/dim]")
        return
    label = "Snapshot saved" if outcome.partial else "Memory updated"
    console.print(f"[green]{label}.[/green]")
    if outcome.summary:
        console.print(f"  {escape(outcome.summary)}")
    console.print(f"  Focus: {escape(outcome.memory.current_focus) or '[dim]not set[/dim]'}")
    if outcome.turns_saved:
        console.print(f"  [dim]{outcome.turns_saved} conversation turns saved[/dim]")


def format_compression_error(
    error: CompressionError, console: Console, log_path: Optional[str] = None
) -> None:
    format_error(str(error), console)
    if log_path:
        console.print(f"  [dim]Raw log preserved: {escape(log_path)}[/dim]")
    console.print("  [dim]Retry with: memex compress[/dim]")


def format_session_result(result: SessionResult, console: Console) -> None:
    """Display how a supervised session ended."""
    run = result.supervisor
    ended = "ended by signal" if run.abrupt else f"exited with code {run.exit_code}"
    console.print(f"\n[bold]Session #{result.session_id}[/bold] {ended} [dim]({run.strategy})[/dim]")
    if result.error is not None:
        format_compression_error(result.error, console, str(run.raw_log_path or run.structured_log_path))
    elif result.outcome is not None:
        format_outcome(result.outcome, console)


def format_recovery(result: RecoveryResult, console: Console) -> None:
    if result.error is not None:
        format_compression_error(result.error, console, result.marker.raw_log_path)
    elif result.outcome is not None:
        format_outcome(result.outcome, console)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
