"""Cooperative shutdown for a supervised session.

One ShutdownToken is installed per supervised run. The first SIGHUP,
SIGINT or SIGTERM flips it; the supervisor's I/O loop notices on its next
idle tick, terminates the child and lets the normal exit path (transcript
collection, compression) run. Signals after the first are ignored until
the token is uninstalled. SIGPIPE is ignored for the lifetime of the token
so writes to a closed terminal cannot kill the process mid-compression.
"""

from __future__ import annotations

import logging
import signal
from types import FrameType
from typing import Any, Optional

logger = logging.getLogger(__name__)

_TERMINATION_SIGNALS = ("SIGHUP", "SIGINT", "SIGTERM")


class ShutdownToken:
    def __init__(self) -> None:
        self._triggered = False
        self._signum: Optional[int] = None
        self._previous: dict[int, Any] = {}

    @property
    def triggered(self) -> bool:
        return self._triggered

    @property
    def signum(self) -> Optional[int]:
        """The signal that triggered shutdown, if one did."""
        return self._signum

    @property
    def installed(self) -> bool:
        return bool(self._previous)

    def install(self) -> None:
        """Register handlers. Must be called from the main thread."""
        if self._previous:
            return
        for name in _TERMINATION_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is not None:
                self._previous[signum] = signal.signal(signum, self._handle)
        sigpipe = getattr(signal, "SIGPIPE", None)
        if sigpipe is not None:
            self._previous[sigpipe] = signal.signal(sigpipe, signal.SIG_IGN)

    def uninstall(self) -> None:
        """Restore the handlers that were active before ``install``."""
        while self._previous:
            signum, handler = self._previous.popitem()
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)

    def trigger(self, signum: Optional[int] = None) -> None:
        """Begin shutdown. Only the first call has any effect."""
        if self._triggered:
            return
        self._triggered = True
        self._signum = signum
        if signum is not None:
            logger.info("Received %s, shutting down session", signal.Signals(signum).name)

    def _handle(self, signum: int, frame: Optional[FrameType]) -> None:
        self.trigger(signum)

    def __enter__(self) -> ShutdownToken:
        self.install()
        return self

    def __exit__(self, *args: object) -> None:
        self.uninstall()
