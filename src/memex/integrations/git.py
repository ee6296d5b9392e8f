"""Git context for compression prompts.

Collects the current branch, the last few commits and the files changed
since HEAD. Any failure (not a repository, git missing, timeout) yields
None; git context is optional input and never blocks compression.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_RECENT_COMMITS = 5
MAX_LISTED_FILES = 20
_GIT_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class GitContext:
    branch: str
    recent_commits: list[str] = field(default_factory=list)
    changed_files: list[str] = field(default_factory=list)


def _git(cwd: str | Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
        timeout=_GIT_TIMEOUT_SECONDS,
    )
    return result.stdout.strip()


def _lines(text: str) -> list[str]:
    return [line for line in text.splitlines() if line]


def get_git_context(cwd: str | Path) -> GitContext | None:
    """Git context for ``cwd``, or None if it is not available."""
    try:
        _git(cwd, "rev-parse", "--git-dir")
        branch = _git(cwd, "rev-parse", "--abbrev-ref", "HEAD")
        commits = _lines(_git(cwd, "log", "--oneline", f"-{MAX_RECENT_COMMITS}"))
        changed = _lines(_git(cwd, "diff", "--name-only", "HEAD"))
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("No git context for %s: %s", cwd, exc)
        return None
    return GitContext(branch=branch, recent_commits=commits, changed_files=changed)


def format_git_context(ctx: GitContext) -> str:
    """Render git context as a plain-text block for prompts."""
    lines = [f"Git branch: {ctx.branch}"]

    if ctx.recent_commits:
        lines += ["", "Recent commits:"]
        lines += [f"  {c}" for c in ctx.recent_commits]

    if ctx.changed_files:
        lines += ["", f"Files changed since HEAD ({len(ctx.changed_files)}):"]
        lines += [f"  {f}" for f in ctx.changed_files[:MAX_LISTED_FILES]]
        if len(ctx.changed_files) > MAX_LISTED_FILES:
            lines.append(f"  ... and {len(ctx.changed_files) - MAX_LISTED_FILES} more")

    return "\n".join(lines)


def ensure_gitignore(project_path: str | Path, entry: str = ".memex/") -> bool:
    """Add ``entry`` to the project's ``.gitignore`` when it is a git checkout.

    Returns True only when the file was changed.
    """
    root = Path(project_path)
    if not (root / ".git").exists():
        return False
    gitignore = root / ".gitignore"
    try:
        existing = gitignore.read_text(encoding="utf-8") if gitignore.is_file() else ""
    except OSError:
        logger.debug("Could not read %s", gitignore, exc_info=True)
        return False
    wanted = entry.rstrip("/")
    if any(line.strip().rstrip("/") == wanted for line in existing.splitlines()):
        return False
    prefix = "" if not existing or existing.endswith("\n") else "\n"
    try:
        with gitignore.open("a", encoding="utf-8") as fh:
            fh.write(f"{prefix}{entry}\n")
    except OSError:
        logger.debug("Could not update %s", gitignore, exc_info=True)
        return False
    return True
