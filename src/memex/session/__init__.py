"""Session workflow: crash-recovery markers, context reinjection, runner."""

from memex.session.markers import RecoveryResult, SessionStateTracker, load_session_logs
from memex.session.resume import ResumeInjection, resume_context
from memex.session.runner import SessionResult, SessionRunner, latest_session_logs

__all__ = [
    "RecoveryResult",
    "ResumeInjection",
    "SessionResult",
    "SessionRunner",
    "SessionStateTracker",
    "latest_session_logs",
    "load_session_logs",
    "resume_context",
]
