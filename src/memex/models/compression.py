"""Domain models for the compression subsystem.

Provides the parsed summarizer response (MemoryExtraction) and the result
of a compression run (CompressionOutcome).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from memex.models.memory import ImportantFile, KeyDecision

if TYPE_CHECKING:
    from memex.models.memory import ProjectMemory


class CompressionStatus(str, enum.Enum):
    """Terminal state of one compression run."""

    COMPRESSED = "compressed"
    TOO_SHORT = "too_short"


class MemoryExtraction(BaseModel):
    """Fixed-shape record the summarizer must return.

    Fields left out of the response (None) keep their existing values.
    ``focus_history`` being None triggers deterministic repair.
    """

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }

    project_name: Optional[str] = None
    description: Optional[str] = None
    stack: Optional[list[str]] = None
    decisions: Optional[list[KeyDecision]] = None
    current_focus: Optional[str] = None
    focus_history: Optional[list[str]] = None
    pending_tasks: Optional[list[str]] = None
    important_files: Optional[list[ImportantFile]] = None
    gotchas: Optional[list[str]] = None
    session_summary: Optional[str] = None


@dataclass(frozen=True)
class CompressionOutcome:
    """Result of a compression run that did not raise.

    Attributes:
        status: COMPRESSED or TOO_SHORT (failures raise CompressionFailedError).
        memory: Memory as persisted after the run.
        summary: Session summary recorded for this run, if any.
        partial: True for snapshot runs.
    """

    status: CompressionStatus
    memory: ProjectMemory
    summary: str = ""
    partial: bool = False
    turns_saved: int = 0
