"""Capture strategies for the supervised agent process.

A strategy starts the child and returns a CaptureHandle. The supervisor
tries strategies in order; a strategy that cannot run here raises
RecorderUnavailableError and the next one is tried.

- PtyRecorder -- runs the child on a pseudo-terminal, puts the real
  terminal in raw mode and relays bytes both ways with ``select`` on a
  single thread. Every byte of child output is appended to the raw
  capture file before it is echoed or logged.
- DirectSpawn -- plain ``subprocess.Popen`` with inherited stdio. Nothing
  is captured and input cannot be injected.
"""

from __future__ import annotations

import codecs
import logging
import os
import select
import shutil
import signal
import subprocess
import sys
from pathlib import Path
from typing import IO, Callable, Mapping, Optional, Protocol, Sequence, runtime_checkable

from memex.capture.executable import build_env_unset_args
from memex.capture.transcript import TranscriptLogger
from memex.exceptions import ProcessStartError, RecorderUnavailableError

logger = logging.getLogger(__name__)

IDLE_TICK_SECONDS = 0.1
_READ_SIZE = 4096

IdleCallback = Callable[[], None]


@runtime_checkable
class CaptureHandle(Protocol):
    """A running child process under one capture strategy."""

    strategy: str
    raw_log_path: Optional[Path]

    def wait(self, on_idle: IdleCallback) -> int:
        """Block until the child exits, calling ``on_idle`` between polls.

        Returns the child's exit code (negative signal number if killed).
        """
        ...

    def write(self, text: str) -> bool:
        """Type ``text`` into the child's input. False if unsupported."""
        ...

    def kill(self, sig: int = signal.SIGTERM) -> None:
        ...


class CaptureStrategy(Protocol):
    name: str

    def start(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path,
        env: Mapping[str, str],
        transcript: TranscriptLogger,
    ) -> CaptureHandle:
        ...


def _std_fd(stream: object) -> int:
    try:
        return stream.fileno()  # type: ignore[attr-defined]
    except (AttributeError, ValueError, OSError) as exc:
        raise RecorderUnavailableError(f"stream has no file descriptor: {exc}") from exc


# ---------------------------------------------------------------------------
# Pseudo-terminal recorder
# ---------------------------------------------------------------------------


class PtyRecorder:
    """Primary strategy: record the session through a pseudo-terminal."""

    name = "pty"

    def __init__(self, unset_keys: Optional[Sequence[str]] = None) -> None:
        self._unset_args = (
            build_env_unset_args(unset_keys) if unset_keys is not None else build_env_unset_args()
        )

    def start(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path,
        env: Mapping[str, str],
        transcript: TranscriptLogger,
    ) -> PtyHandle:
        try:
            import pty
            import termios  # noqa: F401
            import tty  # noqa: F401
        except ImportError as exc:
            raise RecorderUnavailableError(f"pseudo-terminals not supported: {exc}") from exc

        stdin_fd = _std_fd(sys.stdin)
        stdout_fd = _std_fd(sys.stdout)
        env_bin = shutil.which("env", path=env.get("PATH"))
        if env_bin is None:
            raise RecorderUnavailableError("`env` not found on PATH")

        child_argv = [env_bin, *self._unset_args, *argv]
        raw_path = transcript.raw_log_path
        raw_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            raw_fh = raw_path.open("ab")
        except OSError as exc:
            raise RecorderUnavailableError(f"cannot open raw capture {raw_path}: {exc}") from exc

        try:
            pid, master_fd = pty.fork()
        except OSError as exc:
            raw_fh.close()
            raise RecorderUnavailableError(f"pty.fork failed: {exc}") from exc

        if pid == 0:  # child
            try:
                os.chdir(cwd)
                os.execve(child_argv[0], child_argv, dict(env))
            except OSError as exc:
                os.write(2, f"memex: cannot exec {argv[0]}: {exc}\r\n".encode())
            os._exit(127)

        logger.debug("Started %s under pty (pid %d)", argv[0], pid)
        return PtyHandle(pid, master_fd, stdin_fd, stdout_fd, raw_fh, raw_path, transcript)


class PtyHandle:
    strategy = "pty"

    def __init__(
        self,
        pid: int,
        master_fd: int,
        stdin_fd: int,
        stdout_fd: int,
        raw_fh: IO[bytes],
        raw_log_path: Path,
        transcript: TranscriptLogger,
    ) -> None:
        self.pid = pid
        self.raw_log_path: Optional[Path] = raw_log_path
        self._master_fd = master_fd
        self._stdin_fd = stdin_fd
        self._stdout_fd = stdout_fd
        self._raw_fh = raw_fh
        self._transcript = transcript
        self._out_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._in_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._echo = True
        self._resized = False
        self._closed = False

    def wait(self, on_idle: IdleCallback) -> int:
        import termios
        import tty

        saved_attrs = None
        if os.isatty(self._stdin_fd):
            saved_attrs = termios.tcgetattr(self._stdin_fd)
            tty.setraw(self._stdin_fd)
        previous_winch = self._install_winch()
        self._copy_window_size()
        try:
            self._relay(on_idle)
        finally:
            if saved_attrs is not None:
                termios.tcsetattr(self._stdin_fd, termios.TCSAFLUSH, saved_attrs)
            if previous_winch is not None:
                signal.signal(signal.SIGWINCH, previous_winch)
            self._close()

        _, status = os.waitpid(self.pid, 0)
        return os.waitstatus_to_exitcode(status)

    def _relay(self, on_idle: IdleCallback) -> None:
        read_fds = [self._master_fd, self._stdin_fd]
        while True:
            on_idle()
            if self._resized:
                self._resized = False
                self._copy_window_size()
            readable, _, _ = select.select(read_fds, [], [], IDLE_TICK_SECONDS)

            if self._master_fd in readable:
                try:
                    data = os.read(self._master_fd, _READ_SIZE)
                except OSError:
                    # EIO once the child side of the pty is gone
                    data = b""
                if not data:
                    return
                self._raw_fh.write(data)
                self._raw_fh.flush()
                self._echo_out(data)
                self._transcript.log_output(self._out_decoder.decode(data))

            if self._stdin_fd in readable:
                try:
                    data = os.read(self._stdin_fd, _READ_SIZE)
                except OSError:
                    data = b""
                if not data:
                    read_fds.remove(self._stdin_fd)
                    continue
                try:
                    self._write_master(data)
                except OSError:
                    # Child closed its side; drain remaining output, drop keyboard
                    logger.debug("Child pty no longer accepts input", exc_info=True)
                    read_fds.remove(self._stdin_fd)
                    continue
                self._transcript.log_input(self._in_decoder.decode(data))

    def _echo_out(self, data: bytes) -> None:
        if not self._echo:
            return
        try:
            while data:
                written = os.write(self._stdout_fd, data)
                data = data[written:]
        except OSError:
            # Terminal went away; keep recording without echo
            logger.debug("Terminal output closed; continuing capture")
            self._echo = False

    def _write_master(self, data: bytes) -> None:
        while data:
            written = os.write(self._master_fd, data)
            data = data[written:]

    def write(self, text: str) -> bool:
        if self._closed:
            return False
        try:
            self._write_master((text + "\r").encode("utf-8"))
        except OSError:
            logger.debug("Could not write to child pty", exc_info=True)
            return False
        self._transcript.log_input(text + "\n")
        return True

    def kill(self, sig: int = signal.SIGTERM) -> None:
        try:
            os.kill(self.pid, sig)
        except ProcessLookupError:
            pass

    def _install_winch(self) -> object:
        sigwinch = getattr(signal, "SIGWINCH", None)
        if sigwinch is None or not os.isatty(self._stdout_fd):
            return None

        def _on_winch(signum: int, frame: object) -> None:
            self._resized = True

        return signal.signal(sigwinch, _on_winch)

    def _copy_window_size(self) -> None:
        import fcntl
        import termios

        if not os.isatty(self._stdout_fd):
            return
        try:
            size = fcntl.ioctl(self._stdout_fd, termios.TIOCGWINSZ, b"\0" * 8)
            fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, size)
        except OSError:
            logger.debug("Could not copy terminal size", exc_info=True)

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._raw_fh.close()
        try:
            os.close(self._master_fd)
        except OSError:
            pass


# ---------------------------------------------------------------------------
# Direct spawn fallback
# ---------------------------------------------------------------------------


class DirectSpawn:
    """Fallback strategy: inherited stdio, no capture."""

    name = "direct"

    def start(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path,
        env: Mapping[str, str],
        transcript: TranscriptLogger,
    ) -> DirectHandle:
        try:
            proc = subprocess.Popen(list(argv), cwd=str(cwd), env=dict(env))
        except OSError as exc:
            raise ProcessStartError(Path(argv[0]).name, argv[0], str(exc)) from exc
        logger.debug("Started %s directly (pid %d)", argv[0], proc.pid)
        return DirectHandle(proc)


class DirectHandle:
    strategy = "direct"
    raw_log_path: Optional[Path] = None

    def __init__(self, proc: subprocess.Popen) -> None:
        self._proc = proc

    def wait(self, on_idle: IdleCallback) -> int:
        while True:
            on_idle()
            try:
                return self._proc.wait(timeout=IDLE_TICK_SECONDS)
            except subprocess.TimeoutExpired:
                continue

    def write(self, text: str) -> bool:
        logger.warning("Cannot inject input: session is running without a recorder")
        return False

    def kill(self, sig: int = signal.SIGTERM) -> None:
        if self._proc.poll() is None:
            self._proc.send_signal(sig)


def default_strategies() -> list[CaptureStrategy]:
    return [PtyRecorder(), DirectSpawn()]
