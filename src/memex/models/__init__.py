"""Domain models for Memex."""

from memex.models.compression import CompressionOutcome, CompressionStatus, MemoryExtraction
from memex.models.config import ContextOptions, MemexConfig
from memex.models.memory import (
    ConversationTurn,
    ImportantFile,
    KeyDecision,
    ProjectMemory,
    RecentSession,
)
from memex.models.session import (
    ActiveSessionMarker,
    PendingCompressionMarker,
    RawCaptureEntry,
    SessionRecord,
    SessionSearchHit,
)

__all__ = [
    "ActiveSessionMarker",
    "CompressionOutcome",
    "CompressionStatus",
    "ContextOptions",
    "ConversationTurn",
    "ImportantFile",
    "KeyDecision",
    "MemexConfig",
    "MemoryExtraction",
    "PendingCompressionMarker",
    "ProjectMemory",
    "RawCaptureEntry",
    "RecentSession",
    "SessionRecord",
    "SessionSearchHit",
]
