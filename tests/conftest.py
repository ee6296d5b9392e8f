"""Shared test fixtures for Memex.

Provides a per-test project store, a scripted summarizer, and fake capture
strategies standing in for the agent process.
"""

from __future__ import annotations

import json
import signal
from pathlib import Path
from typing import Callable, Optional, Sequence

import pytest

from memex.capture.shutdown import ShutdownToken
from memex.capture.supervisor import ProcessSupervisor
from memex.capture.transcript import TranscriptLogger
from memex.exceptions import RecorderUnavailableError
from memex.models.config import MemexConfig
from memex.operations.compression import CompressionOrchestrator
from memex.storage.store import MemoryStore

LONG_TRANSCRIPT = (
    "[USER]: the login form rejects valid passwords after the session refactor\n"
    "[AGENT]: The bcrypt comparison runs on the trimmed hash. Fixed in auth/verify.py."
)


def extraction_json(**overrides) -> str:
    """A well-formed summarizer reply (camelCase keys)."""
    data = {
        "projectName": "proj",
        "description": "A web app with a login form.",
        "stack": ["python", "flask"],
        "decisions": [{"decision": "Use bcrypt", "reason": "Already a dependency"}],
        "currentFocus": "login bug",
        "pendingTasks": ["add regression test for login"],
        "importantFiles": [{"filePath": "auth/verify.py", "purpose": "password checks"}],
        "gotchas": ["hashes are stored with a trailing newline"],
        "sessionSummary": "Fixed password verification after the session refactor.",
    }
    data.update(overrides)
    return json.dumps(data)


class FakeSummarizer:
    """Summarizer returning a canned reply (or raising) and recording calls."""

    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None):
        self.reply = reply if reply is not None else extraction_json()
        self.error = error
        self.calls: list[tuple[list[dict[str, str]], str]] = []

    def complete(self, messages: list[dict[str, str]], system_prompt: str) -> str:
        self.calls.append((messages, system_prompt))
        if self.error is not None:
            raise self.error
        return self.reply


class RecordingWebhook:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    def __call__(self, url: str, payload: dict) -> None:
        self.sent.append((url, payload))


# ---------------------------------------------------------------------------
# Fake capture
# ---------------------------------------------------------------------------


class FakeHandle:
    """Plays a scripted conversation into the transcript, then idles."""

    def __init__(
        self,
        transcript: TranscriptLogger,
        *,
        exchanges: Sequence[tuple[str, str]] = (),
        exit_code: int = 0,
        record_raw: bool = True,
        ticks: int = 3,
        during: Optional[Callable[[], None]] = None,
        strategy: str = "fake",
    ) -> None:
        self.strategy = strategy
        self.raw_log_path: Optional[Path] = transcript.raw_log_path if record_raw else None
        self._transcript = transcript
        self._exchanges = exchanges
        self._exit_code = exit_code
        self._ticks = ticks
        self._during = during
        self.written: list[str] = []
        self.killed_with: Optional[int] = None

    def wait(self, on_idle: Callable[[], None]) -> int:
        raw = []
        for user, agent in self._exchanges:
            self._transcript.log_input(user + "\r")
            self._transcript.log_output(agent)
            raw.append(f"{user}\r\n\x1b[32m{agent}\x1b[0m\r\n")
        if self.raw_log_path is not None:
            self.raw_log_path.write_text("".join(raw), encoding="utf-8")
        if self._during is not None:
            self._during()
        for _ in range(self._ticks):
            on_idle()
            if self.killed_with is not None:
                return -self.killed_with
        return self._exit_code

    def write(self, text: str) -> bool:
        self.written.append(text)
        self._transcript.log_input(text + "\n")
        return True

    def kill(self, sig: int = signal.SIGTERM) -> None:
        self.killed_with = sig


class FakeStrategy:
    name = "fake"

    def __init__(self, **handle_kwargs) -> None:
        self.handle_kwargs = handle_kwargs
        self.started: list[dict] = []
        self.handles: list[FakeHandle] = []

    def start(self, argv, *, cwd, env, transcript) -> FakeHandle:
        self.started.append({"argv": list(argv), "cwd": cwd, "env": dict(env)})
        handle = FakeHandle(transcript, **self.handle_kwargs)
        self.handles.append(handle)
        return handle


class UnavailableStrategy:
    name = "broken"

    def start(self, argv, *, cwd, env, transcript):
        raise RecorderUnavailableError("no terminal")


class QuietToken(ShutdownToken):
    """ShutdownToken that never touches real signal handlers."""

    def install(self) -> None:
        pass

    def uninstall(self) -> None:
        pass


class StepClock:
    """Monotonic clock advancing one second per reading."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


def make_supervisor(strategy, *, token: Optional[ShutdownToken] = None) -> ProcessSupervisor:
    token = token or QuietToken()
    strategies = strategy if isinstance(strategy, list) else [strategy]
    return ProcessSupervisor(
        strategies,
        resolver=lambda command: f"/usr/bin/{command}",
        token_factory=lambda: token,
        clock=StepClock(),
    )


SAMPLE_EXCHANGES = (
    ("the login form rejects valid passwords", "Looking at auth/verify.py now."),
    ("please fix it and add a test", "Fixed the bcrypt comparison and added a regression test."),
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "proj"
    path.mkdir()
    return path


@pytest.fixture
def store(project_dir: Path):
    """File-backed store for a fresh project."""
    s = MemoryStore.open(project_dir)
    yield s
    s.close()


@pytest.fixture
def summarizer() -> FakeSummarizer:
    return FakeSummarizer()


@pytest.fixture
def webhook() -> RecordingWebhook:
    return RecordingWebhook()


@pytest.fixture
def orchestrator(store, summarizer, webhook) -> CompressionOrchestrator:
    return CompressionOrchestrator(
        store,
        summarizer,
        webhook_url="http://hooks.test/memex",
        git_context=None,
        webhook_sender=webhook,
    )


@pytest.fixture
def config() -> MemexConfig:
    return MemexConfig(anthropic_api_key="test-key", inject_delay=1.0)
