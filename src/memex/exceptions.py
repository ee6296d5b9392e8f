"""Memex exception hierarchy.

All Memex-specific exceptions inherit from MemexError.
"""


class MemexError(Exception):
    """Base exception for all Memex errors."""


class ExecutableNotFoundError(MemexError):
    """Raised when the agent command cannot be resolved to an executable."""

    def __init__(self, command: str, attempted_path: str) -> None:
        self.command = command
        self.attempted_path = attempted_path
        super().__init__(
            f'Command "{command}" not found or not executable.\n'
            f"Expected at: {attempted_path}\n"
            f"Run: which {command}"
        )


class RecorderUnavailableError(MemexError):
    """Raised when the terminal recorder cannot start.

    Never fatal: the supervisor falls back to a direct spawn.
    """


class ProcessStartError(MemexError):
    """Raised when no capture strategy could start the agent process."""

    def __init__(self, command: str, attempted_path: str, reason: str) -> None:
        self.command = command
        self.attempted_path = attempted_path
        self.reason = reason
        super().__init__(
            f'Could not start "{attempted_path}": {reason}\n'
            f"Verify it is installed: which {command}"
        )


class StoreError(MemexError):
    """Raised when the memory store cannot complete an operation."""


class SessionNotFoundError(StoreError):
    """Raised when a session id lookup fails."""

    def __init__(self, session_id: int) -> None:
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class CompressionError(MemexError):
    """Base exception for compression failures."""


class CompressionFailedError(CompressionError):
    """A compression attempt failed after its failure entry was persisted.

    Attributes:
        reason: Diagnostic reason, also recorded on the failed session entry.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Compression failed: {reason}")


class CompressionParseError(CompressionFailedError):
    """The summarizer response was empty or not a valid memory record."""


class SummarizerTransportError(CompressionFailedError):
    """The summarization call itself failed (network, auth, API error)."""


class NoActiveSessionError(MemexError):
    """Raised when an operation needs a running session and there is none."""


class NoSessionLogsError(MemexError):
    """Raised when a project has no session logs to compress."""

    def __init__(self, sessions_dir: str) -> None:
        self.sessions_dir = sessions_dir
        super().__init__(f"No session logs found in {sessions_dir}")
