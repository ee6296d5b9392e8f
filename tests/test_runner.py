"""End-to-end tests for SessionRunner with a scripted agent and summarizer."""

from __future__ import annotations

import errno
import os
from unittest.mock import MagicMock

import pytest

from memex.capture.supervisor import ProcessSupervisor
from memex.capture.transcript import TranscriptLogger
from memex.constants import FAILED_SUMMARY, TOO_SHORT_SUMMARY
from memex.exceptions import (
    CompressionParseError,
    ExecutableNotFoundError,
    NoActiveSessionError,
    NoSessionLogsError,
    SummarizerTransportError,
)
from memex.llm.provider import LLMSummarizer
from memex.models.config import ContextOptions
from memex.models.session import ActiveSessionMarker, PendingCompressionMarker
from memex.session.runner import SessionRunner, latest_session_logs
from tests.conftest import (
    SAMPLE_EXCHANGES,
    FakeStrategy,
    FakeSummarizer,
    QuietToken,
    make_supervisor,
)


def _runner(store, config, strategy, summarizer=None) -> SessionRunner:
    return SessionRunner(
        store,
        config=config,
        summarizer=summarizer or FakeSummarizer(),
        supervisor=make_supervisor(strategy),
    )


def _crashed_session(store, *, pid=999_999):
    """Leave behind what a killed run leaves: logs, an open record, an active marker."""
    session_id = store.create_session("claude")
    tlog = TranscriptLogger.create(store.sessions_dir)
    for user, agent in SAMPLE_EXCHANGES:
        tlog.log_input(user + "\n")
        tlog.log_output(agent)
    tlog.close()
    marker = ActiveSessionMarker(
        session_id=session_id,
        raw_log_path=str(tlog.raw_log_path),
        structured_log_path=str(tlog.path),
        pid=pid,
    )
    return session_id, tlog, marker


class TestStart:
    def test_session_is_captured_and_compressed(self, store, config):
        strategy = FakeStrategy(exchanges=SAMPLE_EXCHANGES)
        runner = _runner(store, config, strategy)

        result = runner.start("claude", ["--model", "x"])

        assert result.error is None
        assert result.outcome.summary.startswith("Fixed password verification")
        assert strategy.started[0]["argv"] == ["/usr/bin/claude", "--model", "x"]
        assert strategy.started[0]["cwd"] == store.project_path
        record = store.get_session(result.session_id)
        assert record.is_finalized and not record.failed
        assert len(record.turns) == 4
        assert runner.tracker.read_active() is None
        assert runner.tracker.read_pending() is None

    def test_active_marker_exists_while_running(self, store, config):
        seen = []
        runner = _runner(store, config, None)
        strategy = FakeStrategy(
            exchanges=SAMPLE_EXCHANGES, during=lambda: seen.append(runner.tracker.read_active())
        )
        runner.supervisor = make_supervisor(strategy)

        runner.start("claude")

        [marker] = seen
        assert marker.pid == os.getpid()
        assert marker.session_id is not None

    def test_compression_failure_is_reported_not_raised(self, store, config):
        runner = _runner(
            store, config, FakeStrategy(exchanges=SAMPLE_EXCHANGES), FakeSummarizer(reply="nope")
        )
        result = runner.start("claude")

        assert isinstance(result.error, CompressionParseError)
        assert store.load().last_session.summary == FAILED_SUMMARY
        assert store.get_session(result.session_id).failed
        assert runner.tracker.read_pending() is None
        assert result.supervisor.raw_log_path.exists()

    def test_short_session(self, store, config):
        runner = _runner(store, config, FakeStrategy(exchanges=[("hi", "yo")]))
        result = runner.start("claude")
        assert store.get_session(result.session_id).summary == TOO_SHORT_SUMMARY

    def test_agent_that_cannot_start(self, store, config):
        def resolver(command):
            raise ExecutableNotFoundError(command, f"/nowhere/{command}")

        runner = SessionRunner(
            store,
            config=config,
            summarizer=FakeSummarizer(),
            supervisor=ProcessSupervisor([FakeStrategy()], resolver=resolver, token_factory=QuietToken),
        )
        with pytest.raises(ExecutableNotFoundError):
            runner.start("ghost")

        [record] = store.list_sessions()
        assert record.failed and record.is_finalized
        assert runner.tracker.read_active() is None


    def test_error_after_child_started_leaves_pending_marker(self, store, config):
        def broken_terminal():
            raise OSError(errno.EIO, "Input/output error")

        strategy = FakeStrategy(exchanges=SAMPLE_EXCHANGES, during=broken_terminal)
        runner = _runner(store, config, strategy)

        with pytest.raises(OSError):
            runner.start("claude")

        assert runner.tracker.read_active() is None
        pending = runner.tracker.read_pending()
        assert pending is not None

        result = runner.recover()
        assert result.succeeded
        assert store.get_session(pending.session_id).is_finalized

    def test_auto_snapshot_runs_during_session(self, store, config):
        summarizer = FakeSummarizer()
        strategy = FakeStrategy(exchanges=SAMPLE_EXCHANGES, ticks=6)
        runner = _runner(store, config, strategy, summarizer)

        result = runner.start("claude", snapshot_interval=2)

        prompts = [messages[0]["content"] for messages, _ in summarizer.calls]
        assert any("still in progress" in p for p in prompts[:-1])
        assert "This session has ended." in prompts[-1]
        assert result.outcome is not None
        assert runner._snapshot_thread is None

    def test_no_snapshot_without_interval(self, store, config):
        summarizer = FakeSummarizer()
        runner = _runner(store, config, FakeStrategy(exchanges=SAMPLE_EXCHANGES, ticks=6), summarizer)
        runner.start("claude")
        assert len(summarizer.calls) == 1


class TestClose:
    def test_closes_summarizer_built_from_config(self, store, config):
        runner = SessionRunner(store, config=config, supervisor=make_supervisor(FakeStrategy()))
        summarizer = runner.orchestrator._summarizer
        assert isinstance(summarizer, LLMSummarizer)
        client = MagicMock()
        summarizer._client = client

        with runner:
            pass

        client.close.assert_called_once_with()

    def test_injected_summarizer_is_left_alone(self, store, config):
        summarizer = MagicMock()
        runner = _runner(store, config, FakeStrategy(), summarizer)
        runner.orchestrator
        runner.close()
        summarizer.close.assert_not_called()


class TestRecovery:
    def test_killed_session_is_recovered_on_next_start(self, store, config, monkeypatch):
        session_id, _, marker = _crashed_session(store)
        runner = _runner(store, config, FakeStrategy(exchanges=SAMPLE_EXCHANGES))
        runner.tracker.write_active(marker)
        monkeypatch.setattr("memex.session.markers._pid_alive", lambda pid: False)

        notices = []
        result = runner.recover(on_recover=notices.append)

        assert result.succeeded
        assert [m.session_id for m in notices] == [session_id]
        record = store.get_session(session_id)
        assert record.is_finalized
        assert record.summary.startswith("Fixed password verification")
        assert store.load().last_session.session_id == session_id
        assert runner.recover() is None

    def test_unexpected_summarizer_error_does_not_wedge_recovery(self, store, config, monkeypatch):
        session_id, _, marker = _crashed_session(store)
        runner = _runner(
            store, config, FakeStrategy(), FakeSummarizer(error=RuntimeError("bad plugin"))
        )
        runner.tracker.write_active(marker)
        monkeypatch.setattr("memex.session.markers._pid_alive", lambda pid: False)

        result = runner.recover()

        assert isinstance(result.error, SummarizerTransportError)
        assert runner.tracker.read_pending() is None
        assert store.get_session(session_id).failed
        assert runner.recover() is None

    def test_pending_marker_for_deleted_session(self, store, config):
        _, tlog, _ = _crashed_session(store)
        runner = _runner(store, config, FakeStrategy())
        runner.tracker.write_pending(
            PendingCompressionMarker(
                session_id=12345,
                raw_log_path=str(tlog.raw_log_path),
                structured_log_path=str(tlog.path),
            )
        )
        result = runner.recover()
        assert result.succeeded
        assert store.load().last_session.session_id is None


class TestResume:
    def test_claude_sees_context_in_claude_md(self, store, config, project_dir):
        memory = store.init()
        memory.current_focus = "login bug"
        store.save(memory)
        seen = []
        strategy = FakeStrategy(
            exchanges=SAMPLE_EXCHANGES,
            during=lambda: seen.append((project_dir / "CLAUDE.md").read_text(encoding="utf-8")),
        )
        runner = _runner(store, config, strategy)

        runner.resume("claude", options=ContextOptions(tier=2))

        assert "login bug" in seen[0]
        assert not (project_dir / "CLAUDE.md").exists()
        assert strategy.handles[0].written == []

    def test_other_agent_gets_message_typed_in(self, store, config):
        store.init()
        strategy = FakeStrategy(exchanges=SAMPLE_EXCHANGES, ticks=5)
        runner = _runner(store, config, strategy)
        injections = []

        runner.resume("aider", on_inject=injections.append)

        [written] = strategy.handles[0].written
        assert "RESUME.md" in written
        assert injections[0].inject_on_ready == written

    def test_focus_is_saved_first(self, store, config):
        store.init()
        runner = _runner(store, config, FakeStrategy(exchanges=SAMPLE_EXCHANGES))
        summarizer = runner._summarizer
        runner.resume("aider", focus="billing")
        prompt = summarizer.calls[0][0][0]["content"]
        assert "billing" in prompt

    def test_without_memory_starts_fresh(self, store, config):
        strategy = FakeStrategy(exchanges=SAMPLE_EXCHANGES, ticks=5)
        runner = _runner(store, config, strategy)
        runner.resume("aider")
        assert strategy.handles[0].written == []
        assert store.exists()


class TestSnapshot:
    def test_no_running_session(self, store, config):
        with pytest.raises(NoActiveSessionError):
            _runner(store, config, FakeStrategy()).snapshot()

    def test_snapshot_during_session(self, store, config):
        snapshots = []
        runner = _runner(store, config, None)
        strategy = FakeStrategy(
            exchanges=SAMPLE_EXCHANGES, during=lambda: snapshots.append(runner.snapshot())
        )
        runner.supervisor = make_supervisor(strategy)

        runner.start("claude")

        [outcome] = snapshots
        assert outcome.partial
        assert outcome.memory.current_focus == "login bug"
        assert len(store.load().recent_sessions) == 1


class TestCompressLatest:
    def test_no_logs(self, store, config):
        with pytest.raises(NoSessionLogsError):
            _runner(store, config, FakeStrategy()).compress_latest()

    def test_retries_failed_session(self, store, config):
        failing = _runner(
            store, config, FakeStrategy(exchanges=SAMPLE_EXCHANGES), FakeSummarizer(reply="nope")
        )
        session_id = failing.start("claude").session_id

        outcome = _runner(store, config, FakeStrategy()).compress_latest()

        assert outcome.summary.startswith("Fixed password verification")
        record = store.get_session(session_id)
        assert not record.failed
        [entry] = store.load().recent_sessions
        assert entry.session_id == session_id and not entry.failed

    def test_finalized_session_gets_standalone_entry(self, store, config):
        _runner(store, config, FakeStrategy(exchanges=SAMPLE_EXCHANGES)).start("claude")
        summarizer = FakeSummarizer(reply='{"sessionSummary": "Second look."}')
        outcome = _runner(store, config, FakeStrategy(), summarizer).compress_latest()
        assert outcome.summary == "Second look."
        assert store.list_sessions()[0].summary != "Second look."


class TestLatestSessionLogs:
    def test_picks_newest_stem(self, tmp_path):
        (tmp_path / "2026-01-01T00-00-00-000Z.jsonl").write_text("")
        (tmp_path / "2026-02-01T00-00-00-000Z-raw.txt").write_text("")
        raw, structured = latest_session_logs(tmp_path)
        assert raw.name == "2026-02-01T00-00-00-000Z-raw.txt"
        assert structured.name == "2026-02-01T00-00-00-000Z.jsonl"

    def test_empty_or_missing_dir(self, tmp_path):
        assert latest_session_logs(tmp_path) is None
        assert latest_session_logs(tmp_path / "missing") is None
