"""Process supervisor for the wrapped agent.

ProcessSupervisor resolves the agent executable, strips Memex's own
credentials from the child environment, starts the child through the
first capture strategy that works, optionally types a message into it
after a delay, and turns the capture into a transcript on exit.

Abrupt termination (window closed, Ctrl+C under the fallback strategy,
``kill``) is handled through a ShutdownToken: the child is terminated and
the run returns normally with ``abrupt=True`` so the caller can still
compress the session.
"""

from __future__ import annotations

import logging
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from memex.capture.executable import resolve_executable, sanitize_env
from memex.capture.shutdown import ShutdownToken
from memex.capture.strategies import CaptureHandle, CaptureStrategy, default_strategies
from memex.capture.transcript import TranscriptLogger, read_raw_capture
from memex.constants import DEFAULT_INJECT_DELAY_SECONDS
from memex.exceptions import ProcessStartError, RecorderUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SupervisorResult:
    """Outcome of one supervised run.

    Attributes:
        exit_code: Child exit code; negative for death by signal.
        transcript: Cleaned text of the session (raw capture when one
            exists, otherwise the structured log's flat rendering).
        structured_log_path: JSONL log of captured entries.
        raw_log_path: Raw terminal capture, or None under direct spawn.
        abrupt: True when a termination signal ended the session.
        strategy: Name of the capture strategy that ran the child.
    """

    exit_code: int
    transcript: str
    structured_log_path: Path
    raw_log_path: Optional[Path]
    abrupt: bool
    strategy: str


class ProcessSupervisor:
    """Launch and supervise one agent session.

    Usage::

        supervisor = ProcessSupervisor()
        with TranscriptLogger.create(store.sessions_dir) as tlog:
            result = supervisor.run("claude", cwd=project, transcript=tlog)
    """

    def __init__(
        self,
        strategies: Optional[Sequence[CaptureStrategy]] = None,
        *,
        resolver: Callable[[str], str] = resolve_executable,
        token_factory: Callable[[], ShutdownToken] = ShutdownToken,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._strategies = list(strategies) if strategies is not None else default_strategies()
        self._resolve = resolver
        self._token_factory = token_factory
        self._clock = clock

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | Path,
        transcript: TranscriptLogger,
        inject_on_ready: Optional[str] = None,
        inject_delay: float = DEFAULT_INJECT_DELAY_SECONDS,
        environ: Optional[Mapping[str, str]] = None,
        on_snapshot: Optional[Callable[[], None]] = None,
        snapshot_interval: Optional[float] = None,
    ) -> SupervisorResult:
        """Run the agent to completion.

        When ``on_snapshot`` and ``snapshot_interval`` are both given,
        ``on_snapshot`` is called from the idle tick every
        ``snapshot_interval`` seconds while the child runs.

        Raises:
            ExecutableNotFoundError: ``command`` does not resolve.
            ProcessStartError: No strategy could start the child.
        """
        executable = self._resolve(command)
        argv = [executable, *args]
        env = sanitize_env(os.environ if environ is None else environ)

        token = self._token_factory()
        token.install()
        try:
            handle = self._start(command, argv, cwd, env, transcript)
            on_idle = self._idle_tick(
                handle, token, inject_on_ready, inject_delay, on_snapshot, snapshot_interval
            )
            exit_code = handle.wait(on_idle)
        finally:
            token.uninstall()
            transcript.close()

        if handle.raw_log_path is not None:
            text = read_raw_capture(handle.raw_log_path)
        else:
            text = transcript.render_transcript()

        logger.info(
            "Session ended (exit %d, strategy %s%s)",
            exit_code,
            handle.strategy,
            ", abrupt" if token.triggered else "",
        )
        return SupervisorResult(
            exit_code=exit_code,
            transcript=text,
            structured_log_path=transcript.path,
            raw_log_path=handle.raw_log_path,
            abrupt=token.triggered,
            strategy=handle.strategy,
        )

    def _start(
        self,
        command: str,
        argv: list[str],
        cwd: str | Path,
        env: dict[str, str],
        transcript: TranscriptLogger,
    ) -> CaptureHandle:
        reasons: list[str] = []
        for strategy in self._strategies:
            try:
                return strategy.start(argv, cwd=cwd, env=env, transcript=transcript)
            except RecorderUnavailableError as exc:
                logger.warning(
                    "Capture strategy %s unavailable (%s); falling back", strategy.name, exc
                )
                reasons.append(f"{strategy.name}: {exc}")
        raise ProcessStartError(command, argv[0], "; ".join(reasons) or "no capture strategy")

    def _idle_tick(
        self,
        handle: CaptureHandle,
        token: ShutdownToken,
        inject_on_ready: Optional[str],
        inject_delay: float,
        on_snapshot: Optional[Callable[[], None]] = None,
        snapshot_interval: Optional[float] = None,
    ) -> Callable[[], None]:
        deadline = self._clock() + inject_delay if inject_on_ready else None
        next_snapshot = (
            self._clock() + snapshot_interval if on_snapshot and snapshot_interval else None
        )
        killed = False

        def on_idle() -> None:
            nonlocal deadline, killed, next_snapshot
            if token.triggered and not killed:
                killed = True
                handle.kill(signal.SIGTERM)
            if deadline is not None and self._clock() >= deadline:
                deadline = None
                if not killed and inject_on_ready:
                    handle.write(inject_on_ready)
            if next_snapshot is not None and not killed and self._clock() >= next_snapshot:
                assert on_snapshot is not None and snapshot_interval is not None
                next_snapshot = self._clock() + snapshot_interval
                on_snapshot()

        return on_idle
