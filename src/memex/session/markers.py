"""Crash-recovery markers for a project's sessions.

Two small JSON files under ``.memex/`` record how far a session got:

- ``active-session.json`` exists while the agent is running.
- ``pending-compression.json`` exists from the moment the agent exits
  until compression of its transcript has finished.

Either file surviving into the next start means the previous run was
interrupted. :meth:`SessionStateTracker.recover` turns that leftover into
a normal compression of the preserved logs.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from memex.capture.transcript import TranscriptLogger, read_raw_capture
from memex.constants import ACTIVE_SESSION_FILE, MAX_CONVERSATION_TURNS, PENDING_COMPRESSION_FILE
from memex.exceptions import CompressionError
from memex.models.compression import CompressionOutcome
from memex.models.memory import ConversationTurn
from memex.models.session import ActiveSessionMarker, PendingCompressionMarker

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class RecoveredLogs:
    """What a marker's logs still hold."""

    transcript: str
    turns: list[ConversationTurn]
    structured_log_path: Path


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of startup recovery.

    Exactly one of ``outcome`` and ``error`` is set.
    """

    marker: PendingCompressionMarker
    outcome: Optional[CompressionOutcome] = None
    error: Optional[CompressionError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


RecoverCallback = Callable[[PendingCompressionMarker, RecoveredLogs], CompressionOutcome]


def load_session_logs(
    raw_log_path: str | Path | None,
    structured_log_path: str | Path,
) -> RecoveredLogs:
    """Reparse a session's logs into a transcript and turns.

    The raw capture is preferred for the transcript. When it is missing or
    empty (direct-spawn sessions never write one) the structured log's
    flat rendering is used instead.
    """
    structured = TranscriptLogger.load(structured_log_path)
    text = read_raw_capture(raw_log_path) if raw_log_path else ""
    if not text.strip():
        text = structured.render_transcript()
    return RecoveredLogs(
        transcript=text,
        turns=structured.conversation_turns(MAX_CONVERSATION_TURNS),
        structured_log_path=structured.path,
    )


def _pid_alive(pid: int) -> bool:
    if pid == os.getpid():
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class SessionStateTracker:
    """Reads and writes the session markers of one project.

    Args:
        memex_dir: The project's ``.memex`` directory.
    """

    def __init__(self, memex_dir: str | Path) -> None:
        self.memex_dir = Path(memex_dir)

    @property
    def active_path(self) -> Path:
        return self.memex_dir / ACTIVE_SESSION_FILE

    @property
    def pending_path(self) -> Path:
        return self.memex_dir / PENDING_COMPRESSION_FILE

    # ------------------------------------------------------------------
    # Active-session marker
    # ------------------------------------------------------------------

    def write_active(self, marker: ActiveSessionMarker) -> None:
        self._write(self.active_path, marker)

    def read_active(self) -> Optional[ActiveSessionMarker]:
        return self._read(self.active_path, ActiveSessionMarker)

    def clear_active(self) -> None:
        self.active_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Pending-compression marker
    # ------------------------------------------------------------------

    def write_pending(self, marker: PendingCompressionMarker) -> None:
        self._write(self.pending_path, marker)

    def read_pending(self) -> Optional[PendingCompressionMarker]:
        return self._read(self.pending_path, PendingCompressionMarker)

    def clear_pending(self) -> None:
        self.pending_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def pending_recovery(self) -> Optional[PendingCompressionMarker]:
        """The marker to recover on startup, or None.

        A pending marker wins. Otherwise an active marker whose owner
        process is gone is promoted to a pending one. Markers that cannot
        be parsed or whose logs are gone are deleted without a word.
        """
        marker = self.read_pending()
        if marker is None:
            self._discard_if_unreadable(self.pending_path, PendingCompressionMarker)
            marker = self._promote_orphaned_active()
        if marker is None:
            return None
        if not (_exists(marker.raw_log_path) or _exists(marker.structured_log_path)):
            logger.debug("Discarding stale marker; logs for it are gone")
            self.clear_pending()
            return None
        return marker

    def recover(
        self,
        compress: RecoverCallback,
        *,
        on_recover: Optional[Callable[[PendingCompressionMarker], None]] = None,
    ) -> Optional[RecoveryResult]:
        """Compress the session an interrupted run left behind.

        ``compress`` receives the marker and its reparsed logs. The marker
        is cleared once it returns or raises CompressionError, so running
        recovery twice is a no-op; any other exception leaves the marker
        for the next start.

        Returns:
            RecoveryResult, or None when there was nothing to recover.
        """
        marker = self.pending_recovery()
        if marker is None:
            return None

        logger.info("Recovering interrupted session from %s", marker.structured_log_path)
        if on_recover is not None:
            on_recover(marker)
        logs = load_session_logs(marker.raw_log_path, marker.structured_log_path)
        try:
            outcome = compress(marker, logs)
        except CompressionError as exc:
            self.clear_pending()
            return RecoveryResult(marker, error=exc)
        self.clear_pending()
        return RecoveryResult(marker, outcome=outcome)

    def _promote_orphaned_active(self) -> Optional[PendingCompressionMarker]:
        active = self.read_active()
        if active is None:
            self._discard_if_unreadable(self.active_path, ActiveSessionMarker)
            return None
        if active.pid is not None and _pid_alive(active.pid):
            return None
        pending = PendingCompressionMarker(
            session_id=active.session_id,
            raw_log_path=active.raw_log_path,
            structured_log_path=active.structured_log_path,
        )
        self.write_pending(pending)
        self.clear_active()
        logger.debug("Promoted orphaned active marker (pid %s)", active.pid)
        return pending

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _write(self, path: Path, marker: BaseModel) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(marker.model_dump_json(by_alias=True, indent=2), encoding="utf-8")

    def _read(self, path: Path, model: Type[M]) -> Optional[M]:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            logger.debug("Could not read %s", path, exc_info=True)
            return None
        try:
            return model.model_validate_json(text)
        except ValidationError:
            return None

    def _discard_if_unreadable(self, path: Path, model: Type[BaseModel]) -> None:
        if path.exists() and self._read(path, model) is None:
            logger.debug("Discarding unreadable marker %s", path)
            path.unlink(missing_ok=True)


def _exists(path: Optional[str]) -> bool:
    return bool(path) and Path(path).exists()  # type: ignore[arg-type]
