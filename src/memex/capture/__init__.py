"""Session capture: transcript logging, capture strategies, supervision."""

from memex.capture.shutdown import ShutdownToken
from memex.capture.strategies import DirectSpawn, PtyRecorder
from memex.capture.supervisor import ProcessSupervisor, SupervisorResult
from memex.capture.transcript import TranscriptLogger, clean_raw_capture, strip_ansi

__all__ = [
    "DirectSpawn",
    "ProcessSupervisor",
    "PtyRecorder",
    "ShutdownToken",
    "SupervisorResult",
    "TranscriptLogger",
    "clean_raw_capture",
    "strip_ansi",
]
