"""Session workflow: start, resume, snapshot and manual compression.

SessionRunner ties the supervisor, the state tracker, the compression
orchestrator and one project's MemoryStore together. Ordering for a
session:

1. Recover whatever an interrupted run left behind.
2. Open a session record and a transcript, write the active marker.
3. Supervise the agent, snapshotting it periodically when asked; the
   active marker goes away however it ends.
4. Write the pending marker, compress, clear the pending marker.

A kill at any point leaves a marker and the logs on disk, and step 1 of
the next run picks them up.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from memex.capture.supervisor import ProcessSupervisor, SupervisorResult
from memex.capture.transcript import TranscriptLogger
from memex.constants import (
    MAX_CONVERSATION_TURNS,
    RAW_LOG_SUFFIX,
    SNAPSHOT_JOIN_TIMEOUT_SECONDS,
    STRUCTURED_LOG_SUFFIX,
)
from memex.exceptions import (
    CompressionError,
    MemexError,
    NoActiveSessionError,
    NoSessionLogsError,
    SessionNotFoundError,
)
from memex.llm.protocols import Summarizer
from memex.llm.provider import LLMSummarizer
from memex.models.compression import CompressionOutcome
from memex.models.config import ContextOptions, MemexConfig
from memex.models.session import ActiveSessionMarker, PendingCompressionMarker
from memex.operations.compression import CompressionOrchestrator
from memex.operations.focus import set_focus
from memex.session.markers import (
    RecoveredLogs,
    RecoveryResult,
    SessionStateTracker,
    load_session_logs,
)
from memex.session.resume import ResumeInjection, resume_context
from memex.storage.store import MemoryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionResult:
    """How one supervised session ended.

    ``outcome`` is set when compression finished normally, ``error`` when
    it failed (the failure is already recorded in memory).
    """

    session_id: int
    supervisor: SupervisorResult
    outcome: Optional[CompressionOutcome] = None
    error: Optional[CompressionError] = None


def latest_session_logs(sessions_dir: str | Path) -> Optional[tuple[Path, Path]]:
    """``(raw, structured)`` paths of the newest session in ``sessions_dir``.

    Log names start with the session's UTC start time, so the newest sorts
    last. Either file of the pair may be missing.
    """
    sessions_dir = Path(sessions_dir)
    if not sessions_dir.is_dir():
        return None
    stems: set[str] = set()
    for path in sessions_dir.iterdir():
        if path.name.endswith(RAW_LOG_SUFFIX):
            stems.add(path.name[: -len(RAW_LOG_SUFFIX)])
        elif path.name.endswith(STRUCTURED_LOG_SUFFIX):
            stems.add(path.name[: -len(STRUCTURED_LOG_SUFFIX)])
    if not stems:
        return None
    stem = max(stems)
    return (
        sessions_dir / f"{stem}{RAW_LOG_SUFFIX}",
        sessions_dir / f"{stem}{STRUCTURED_LOG_SUFFIX}",
    )


class SessionRunner:
    """Run agent sessions for one project.

    Args:
        store: The project's memory store.
        config: Runtime configuration; read from the environment if omitted.
        summarizer: Summarization collaborator; built from ``config`` on
            first use if omitted.
        supervisor: Process supervisor; a default one if omitted.
    """

    def __init__(
        self,
        store: MemoryStore,
        *,
        config: Optional[MemexConfig] = None,
        summarizer: Optional[Summarizer] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        tracker: Optional[SessionStateTracker] = None,
    ) -> None:
        self.store = store
        self.config = config or MemexConfig.from_env(store.project_path)
        self.supervisor = supervisor or ProcessSupervisor()
        self.tracker = tracker or SessionStateTracker(store.memex_dir)
        self._summarizer = summarizer
        self._orchestrator: Optional[CompressionOrchestrator] = None
        self._owned_summarizer: Optional[LLMSummarizer] = None
        self._snapshot_thread: Optional[threading.Thread] = None

    @property
    def orchestrator(self) -> CompressionOrchestrator:
        if self._orchestrator is None:
            summarizer = self._summarizer
            if summarizer is None:
                summarizer = self._owned_summarizer = LLMSummarizer.from_config(self.config)
            self._orchestrator = CompressionOrchestrator(
                self.store, summarizer, webhook_url=self.config.webhook_url
            )
        return self._orchestrator

    def close(self) -> None:
        """Close the summarizer this runner built for itself."""
        if self._owned_summarizer is not None:
            self._owned_summarizer.close()
            self._owned_summarizer = None
            self._orchestrator = None

    def __enter__(self) -> SessionRunner:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover(
        self,
        on_recover: Optional[Callable[[PendingCompressionMarker], None]] = None,
    ) -> Optional[RecoveryResult]:
        """Compress an interrupted session, if the last run left one."""
        return self.tracker.recover(self._compress_recovered, on_recover=on_recover)

    def _compress_recovered(
        self, marker: PendingCompressionMarker, logs: RecoveredLogs
    ) -> CompressionOutcome:
        session_id = marker.session_id
        if session_id is not None:
            try:
                self.store.get_session(session_id)
            except SessionNotFoundError:
                logger.debug("Recovered session %d no longer in the store", session_id)
                session_id = None
        return self.orchestrator.compress(
            logs.transcript,
            session_id=session_id,
            log_path=logs.structured_log_path,
            turns=logs.turns,
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def start(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        inject_on_ready: Optional[str] = None,
        snapshot_interval: Optional[float] = None,
    ) -> SessionResult:
        """Supervise one agent session and compress it when it ends.

        With ``snapshot_interval`` (seconds) the running session is also
        snapshotted in the background at that interval.

        Raises:
            ExecutableNotFoundError: ``command`` does not resolve.
            ProcessStartError: The agent could not be started.
        """
        session_id = self.store.create_session(command)
        transcript = TranscriptLogger.create(self.store.sessions_dir)
        pending = PendingCompressionMarker(
            session_id=session_id,
            raw_log_path=str(transcript.raw_log_path),
            structured_log_path=str(transcript.path),
        )
        self.tracker.write_active(
            ActiveSessionMarker(
                session_id=session_id,
                raw_log_path=pending.raw_log_path,
                structured_log_path=pending.structured_log_path,
                pid=os.getpid(),
            )
        )

        try:
            result = self.supervisor.run(
                command,
                args,
                cwd=self.store.project_path,
                transcript=transcript,
                inject_on_ready=inject_on_ready,
                inject_delay=self.config.inject_delay,
                on_snapshot=self._auto_snapshot if snapshot_interval else None,
                snapshot_interval=snapshot_interval,
            )
        except MemexError as exc:
            self.store.finalize_session(
                session_id, f"Agent did not start: {exc}", None, failed=True
            )
            raise
        except Exception:
            # The child ran; leave the logs for the next run's recovery
            self.tracker.write_pending(pending)
            raise
        finally:
            self._join_snapshot()
            self.tracker.clear_active()

        self.tracker.write_pending(pending)
        try:
            outcome = self.orchestrator.compress(
                result.transcript,
                session_id=session_id,
                log_path=result.structured_log_path,
                turns=transcript.conversation_turns(MAX_CONVERSATION_TURNS),
            )
        except CompressionError as exc:
            self.tracker.clear_pending()
            return SessionResult(session_id, result, error=exc)
        self.tracker.clear_pending()
        return SessionResult(session_id, result, outcome=outcome)

    def resume(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        options: Optional[ContextOptions] = None,
        focus: Optional[str] = None,
        on_inject: Optional[Callable[[ResumeInjection], None]] = None,
        snapshot_interval: Optional[float] = None,
    ) -> SessionResult:
        """Start a session with project memory reinjected.

        ``focus`` is saved as the project's current focus before the
        context is rendered. Without any memory the session simply starts.
        """
        options = options or ContextOptions()
        memory = self.store.load()
        if focus:
            memory = set_focus(memory or self.store.init(), focus)
            self.store.save(memory)

        if memory is None:
            logger.info("No memory for %s; starting a fresh session", self.store.project_path)
            self.store.init()
            return self.start(command, args, snapshot_interval=snapshot_interval)

        options = ContextOptions(
            tier=options.tier,
            max_tokens=options.max_tokens,
            focus=memory.current_focus or None,
        )
        with resume_context(
            self.store.project_path, self.store.memex_dir, memory, command, options
        ) as injection:
            if on_inject is not None:
                on_inject(injection)
            return self.start(
                command,
                args,
                inject_on_ready=injection.inject_on_ready,
                snapshot_interval=snapshot_interval,
            )

    # ------------------------------------------------------------------
    # Out-of-band compression
    # ------------------------------------------------------------------

    def snapshot(self) -> CompressionOutcome:
        """Partially compress the session that is running right now.

        Raises:
            NoActiveSessionError: No session is running for the project.
        """
        marker = self.tracker.read_active()
        if marker is None:
            raise NoActiveSessionError("No active session to snapshot")
        logs = load_session_logs(marker.raw_log_path, marker.structured_log_path)
        return self.orchestrator.compress(logs.transcript, partial=True)

    def _auto_snapshot(self) -> None:
        """Snapshot the running session on a background thread.

        Skipped while the previous snapshot is still running.
        """
        if self._snapshot_thread is not None and self._snapshot_thread.is_alive():
            logger.debug("Previous snapshot still running; skipping")
            return
        self._snapshot_thread = threading.Thread(
            target=self._run_auto_snapshot, name="memex-snapshot", daemon=True
        )
        self._snapshot_thread.start()

    def _run_auto_snapshot(self) -> None:
        try:
            outcome = self.snapshot()
        except (CompressionError, NoActiveSessionError) as exc:
            logger.warning("Auto-snapshot failed: %s", exc)
            return
        logger.info("Auto-snapshot saved (focus: %s)", outcome.memory.current_focus or "not set")

    def _join_snapshot(self) -> None:
        thread, self._snapshot_thread = self._snapshot_thread, None
        if thread is not None:
            thread.join(timeout=SNAPSHOT_JOIN_TIMEOUT_SECONDS)
            if thread.is_alive():
                logger.warning("Snapshot still running after the session ended")

    def compress_latest(self) -> CompressionOutcome:
        """Compress the newest session log by hand.

        The latest session record is finalized too when it was never
        closed or its earlier compression failed.

        Raises:
            NoSessionLogsError: The project has no session logs.
        """
        records = self.store.list_sessions(limit=1)
        latest = records[0] if records else None

        paths: Optional[tuple[Path, Path]] = None
        if latest is not None and latest.log_path and Path(latest.log_path).exists():
            structured = Path(latest.log_path)
            paths = (structured.with_name(structured.stem + RAW_LOG_SUFFIX), structured)
        if paths is None:
            paths = latest_session_logs(self.store.sessions_dir)
        if paths is None:
            raise NoSessionLogsError(str(self.store.sessions_dir))

        raw, structured = paths
        session_id = None
        if latest is not None and (not latest.is_finalized or latest.failed):
            session_id = latest.id
        logs = load_session_logs(raw, structured)
        return self.orchestrator.compress(
            logs.transcript,
            session_id=session_id,
            log_path=structured,
            turns=logs.turns,
        )
