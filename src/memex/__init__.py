"""Memex: persistent memory for interactive terminal agents.

Memex wraps an agent CLI, records the session, and compresses the
transcript into structured per-project memory that is injected back into
the next session.
"""

from memex._version import __version__

# Capture
from memex.capture.supervisor import ProcessSupervisor, SupervisorResult
from memex.capture.transcript import TranscriptLogger

# Compression and context
from memex.operations.compression import CompressionOrchestrator
from memex.operations.context import build_context, build_resume_content

# Models and configuration
from memex.models.compression import CompressionOutcome, CompressionStatus
from memex.models.config import ContextOptions, MemexConfig
from memex.models.memory import ProjectMemory

# Sessions and storage
from memex.session.markers import SessionStateTracker
from memex.session.runner import SessionRunner
from memex.storage.store import MemoryStore

# Exceptions
from memex.exceptions import (
    CompressionError,
    CompressionFailedError,
    CompressionParseError,
    ExecutableNotFoundError,
    MemexError,
    ProcessStartError,
    RecorderUnavailableError,
    StoreError,
    SummarizerTransportError,
)

__all__ = [
    "__version__",
    "ProcessSupervisor",
    "SupervisorResult",
    "TranscriptLogger",
    "CompressionOrchestrator",
    "build_context",
    "build_resume_content",
    "CompressionOutcome",
    "CompressionStatus",
    "ContextOptions",
    "MemexConfig",
    "ProjectMemory",
    "SessionStateTracker",
    "SessionRunner",
    "MemoryStore",
    "CompressionError",
    "CompressionFailedError",
    "CompressionParseError",
    "ExecutableNotFoundError",
    "MemexError",
    "ProcessStartError",
    "RecorderUnavailableError",
    "StoreError",
    "SummarizerTransportError",
]
