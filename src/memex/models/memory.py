"""Project memory models.

ProjectMemory is the durable, structured understanding of one project that
compression maintains and the context assembler renders. All models
serialize with camelCase keys (``currentFocus``, ``pendingTasks`` ...) so the
same JSON shape is used in prompts, the legacy ``memory.json`` file and
tooling output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class KeyDecision(BaseModel):
    """A decision made about the project and why."""

    model_config = _CAMEL

    decision: str
    reason: str = ""
    date: str = ""


class ImportantFile(BaseModel):
    """A file worth knowing about and what it is for."""

    model_config = _CAMEL

    file_path: str
    purpose: str = ""


class ConversationTurn(BaseModel):
    """One collapsed turn of conversation (consecutive same-source entries)."""

    model_config = _CAMEL

    role: Literal["user", "assistant"]
    content: str
    timestamp: int  # epoch milliseconds of the first merged entry


class RecentSession(BaseModel):
    """Summary entry for one finished session.

    ``failed`` marks a session whose compression did not succeed; ``reason``
    then carries the diagnostic.
    """

    model_config = _CAMEL

    date: str
    summary: str
    log_file: str = ""
    session_id: Optional[int] = None
    failed: bool = False
    reason: Optional[str] = None

    def same_session(self, other: RecentSession) -> bool:
        if self.session_id is not None and other.session_id is not None:
            return self.session_id == other.session_id
        return bool(self.log_file) and self.log_file == other.log_file


class ProjectMemory(BaseModel):
    """Structured memory for a single project."""

    model_config = _CAMEL

    project_name: str
    project_path: str
    stack: list[str] = []
    description: str = ""
    decisions: list[KeyDecision] = []
    current_focus: str = ""
    focus_history: list[str] = []
    pending_tasks: list[str] = []
    important_files: list[ImportantFile] = []
    gotchas: list[str] = []
    recent_sessions: list[RecentSession] = []
    last_conversation_turns: list[ConversationTurn] = []
    last_updated: str = ""

    @property
    def last_session(self) -> RecentSession | None:
        return self.recent_sessions[-1] if self.recent_sessions else None

    @property
    def is_empty(self) -> bool:
        """True when compression has never filled anything in."""
        return not (
            self.description
            or self.stack
            or self.decisions
            or self.current_focus
            or self.pending_tasks
            or self.gotchas
            or self.important_files
        )

    def to_json(self, *, indent: int | None = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)
