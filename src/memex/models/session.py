"""Session capture and session-state models.

Provides:
- RawCaptureEntry: one structured-log line (frozen dataclass)
- SessionRecord: a stored session row with its turns
- SessionSearchHit: a search match with its summary snippet
- ActiveSessionMarker / PendingCompressionMarker: crash-recovery markers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from memex.models.memory import ConversationTurn

Source = Literal["user", "agent"]


@dataclass(frozen=True)
class RawCaptureEntry:
    """A single captured line of input or output.

    Serialized to the structured log as
    ``{"timestamp", "source", "rawText", "normalizedText"}``.
    """

    timestamp: int
    source: Source
    raw_text: str
    normalized_text: str

    def to_log_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "source": self.source,
            "rawText": self.raw_text,
            "normalizedText": self.normalized_text,
        }

    @classmethod
    def from_log_dict(cls, data: dict) -> RawCaptureEntry:
        return cls(
            timestamp=int(data["timestamp"]),
            source=data["source"],
            raw_text=data.get("rawText", ""),
            normalized_text=data["normalizedText"],
        )


@dataclass
class SessionRecord:
    """One agent session as stored in the memory store.

    ``ended_at`` is set exactly once, by the first finalization.
    """

    id: int
    project_path: str
    agent_command: str
    started_at: str
    ended_at: Optional[str] = None
    summary: str = ""
    log_path: Optional[str] = None
    failed: bool = False
    turns: list[ConversationTurn] = field(default_factory=list)

    @property
    def is_finalized(self) -> bool:
        return self.ended_at is not None


@dataclass(frozen=True)
class SessionSearchHit:
    """A session matched by search, with the matching part of its summary."""

    record: SessionRecord
    snippet: str


class _Marker(BaseModel):
    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    session_id: Optional[int] = None
    raw_log_path: str
    structured_log_path: str


class ActiveSessionMarker(_Marker):
    """Written as soon as log paths are known; removed on supervisor exit.

    ``pid`` is the Memex process that owns the session. A marker whose
    owner is gone was left by a process that could not clean up.
    """

    pid: Optional[int] = None


class PendingCompressionMarker(_Marker):
    """Written after the supervisor returns; removed once compression completes."""
