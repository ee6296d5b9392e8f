"""Focus-history bookkeeping.

Invariants kept by every function here: history holds at most
MAX_FOCUS_HISTORY distinct, non-empty values in insertion order and never
contains the current focus. When focus moves from ``previous`` to
``current``, ``current`` leaves the history and ``previous`` is appended
unless it is already there (an existing entry keeps its position).
"""

from __future__ import annotations

from typing import Iterable

from memex.constants import MAX_FOCUS_HISTORY
from memex.models.memory import ProjectMemory


def normalize_history(history: Iterable[str], current: str) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in history:
        item = item.strip()
        if not item or item == current or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out[-MAX_FOCUS_HISTORY:]


def push_focus(history: Iterable[str], previous: str, current: str) -> list[str]:
    """History after focus changes from ``previous`` to ``current``."""
    out = normalize_history(history, current)
    previous = previous.strip()
    if previous and previous != current and previous not in out:
        out.append(previous)
    return out[-MAX_FOCUS_HISTORY:]


def set_focus(memory: ProjectMemory, focus: str) -> ProjectMemory:
    """Copy of ``memory`` with ``focus`` current (empty string clears it)."""
    focus = focus.strip()
    return memory.model_copy(
        update={
            "current_focus": focus,
            "focus_history": push_focus(memory.focus_history, memory.current_focus, focus),
        }
    )
