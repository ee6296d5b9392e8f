"""Context assembly from project memory.

``build_context`` renders memory at one of three verbosity tiers:

- Tier 1 -- one line: project, focus, last session date.
- Tier 2 -- adds description, stack, the top three tasks and gotchas and
  the last session summary.
- Tier 3 -- everything: all tasks and gotchas, decisions, important files
  and recent conversation.

A focus string reorders list items by keyword overlap before the text is
cut to the character budget, so the most relevant items survive
truncation. Output never exceeds the budget; the truncation notice is
appended only when text was actually cut.
"""

from __future__ import annotations

import math
from typing import Callable, Optional, Sequence, TypeVar

from memex.constants import (
    CHARS_PER_TOKEN,
    TIER_CHAR_LIMITS,
    TRUNCATION_NOTICE,
)
from memex.models.config import ContextOptions
from memex.models.memory import ProjectMemory

T = TypeVar("T")

TIER2_LIST_LIMIT = 3
_TURN_PREVIEW_CHARS = 500


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def tokens_to_chars(tokens: int) -> int:
    return tokens * CHARS_PER_TOKEN


def char_budget(options: ContextOptions) -> int:
    """Character budget for ``options``.

    An explicit token budget wins over the tier ceiling.
    """
    if options.max_tokens is not None:
        return tokens_to_chars(options.max_tokens)
    return TIER_CHAR_LIMITS[options.tier]


# ---------------------------------------------------------------------------
# Relevance ordering
# ---------------------------------------------------------------------------


def focus_keywords(focus: Optional[str]) -> list[str]:
    if not focus:
        return []
    return [w for w in focus.lower().split() if len(w) > 2]


def relevance(text: str, keywords: Sequence[str]) -> int:
    """Number of keywords found in ``text`` (case-insensitive substring)."""
    lower = text.lower()
    return sum(1 for kw in keywords if kw in lower)


def order_by_relevance(
    items: Sequence[T],
    keywords: Sequence[str],
    key: Callable[[T], str] = str,
) -> list[T]:
    """Items by descending relevance; ties keep their original order."""
    if not keywords:
        return list(items)
    return sorted(items, key=lambda item: -relevance(key(item), keywords))


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------


def apply_limit(text: str, limit: int) -> str:
    """Fit ``text`` into ``limit`` characters, notice included.

    The cut lands on the last newline inside the available span (a hard
    cut when there is none). A limit too small to hold the notice gets a
    hard cut with no notice.
    """
    if len(text) <= limit:
        return text
    if limit <= len(TRUNCATION_NOTICE):
        return text[: max(limit, 0)]
    room = limit - len(TRUNCATION_NOTICE)
    cut = text[:room]
    newline = cut.rfind("\n")
    if newline > 0:
        cut = cut[:newline]
    return cut.rstrip() + TRUNCATION_NOTICE


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _short_date(iso: str) -> str:
    return iso[:10] if iso else ""


def _one_line(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


def build_context(memory: ProjectMemory, options: Optional[ContextOptions] = None) -> str:
    """Render memory as a bounded context block."""
    options = options or ContextOptions()
    tier = options.tier
    keywords = focus_keywords(options.focus)
    limit = char_budget(options)

    last = memory.last_session
    last_date = _short_date(last.date) if last else ""

    header = [f"Project: {memory.project_name}"]
    if memory.current_focus:
        header.append(f"Focus: {memory.current_focus}")
    if last_date:
        header.append(f"Last session: {last_date}")
    parts = [" | ".join(header)]

    if tier == 1:
        return apply_limit("\n".join(parts), limit)

    if memory.description:
        parts.append(f"\nWhat this project does:\n{memory.description}")
    if memory.stack:
        parts.append(f"\nStack: {', '.join(memory.stack)}")

    for title, values in (("Pending tasks", memory.pending_tasks), ("Gotchas", memory.gotchas)):
        ordered = order_by_relevance(values, keywords)
        shown = ordered[:TIER2_LIST_LIMIT] if tier == 2 else ordered
        if shown:
            parts.append(f"\n{title}:\n{_bullets(shown)}")
        if tier == 2 and len(ordered) > TIER2_LIST_LIMIT:
            parts.append(f"  ... and {len(ordered) - TIER2_LIST_LIMIT} more")

    if last is not None:
        status = " (compression failed)" if last.failed else ""
        parts.append(f"\nLast session ({last_date}){status}:\n{last.summary}")

    if tier == 2:
        return apply_limit("\n".join(parts), limit)

    decisions = order_by_relevance(
        memory.decisions, keywords, key=lambda d: f"{d.decision} {d.reason}"
    )
    if decisions:
        lines = [
            f"{d.decision} (reason: {d.reason})" if d.reason else d.decision for d in decisions
        ]
        parts.append(f"\nKey decisions:\n{_bullets(lines)}")

    files = order_by_relevance(
        memory.important_files, keywords, key=lambda f: f"{f.file_path} {f.purpose}"
    )
    if files:
        lines = [f"{f.file_path}: {f.purpose}" if f.purpose else f.file_path for f in files]
        parts.append(f"\nImportant files:\n{_bullets(lines)}")

    if memory.last_conversation_turns:
        lines = [
            f"{'User' if t.role == 'user' else 'Agent'}: {_one_line(t.content, _TURN_PREVIEW_CHARS)}"
            for t in memory.last_conversation_turns
        ]
        parts.append("\nRecent conversation:\n" + "\n".join(lines))

    return apply_limit("\n".join(parts), limit)


def build_resume_content(memory: ProjectMemory, options: Optional[ContextOptions] = None) -> str:
    """Context block wrapped in the resume document used for reinjection."""
    options = options or ContextOptions()
    lines = [
        "# Memex: Session Context",
        "",
        "> **When you start:** Read this fully, then say: _\"Continuing from our "
        "last session: [where we left off]. What would you like to work on?\"_",
    ]
    if options.focus:
        lines.append(f'> Focus filter active: memory sorted by relevance to **"{options.focus}"**')
    lines += ["", "---", "", build_context(memory, options)]
    return "\n".join(lines)
