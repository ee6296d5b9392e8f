"""Tests for the compression orchestrator, reply parsing and memory merging."""

from __future__ import annotations

import json

import httpx
import pytest

from memex.constants import (
    EMPTY_SUMMARY,
    FAILED_SUMMARY,
    MAX_CONVERSATION_TURNS,
    MAX_RECENT_SESSIONS,
    SKIP_PLACEHOLDER,
    TOO_SHORT_SUMMARY,
    TRANSCRIPT_TAIL_CHARS,
)
from memex.exceptions import CompressionParseError, SummarizerTransportError
from memex.integrations.git import GitContext
from memex.llm.client import OpenAIClient
from memex.llm.errors import LLMAuthError
from memex.llm.provider import LLMSummarizer
from memex.models.compression import CompressionStatus, MemoryExtraction
from memex.models.memory import ConversationTurn, ProjectMemory, RecentSession
from memex.operations.compression import (
    CompressionOrchestrator,
    merge_extraction,
    parse_extraction,
    upsert_recent_session,
)
from tests.conftest import LONG_TRANSCRIPT, FakeSummarizer, extraction_json


def _turns(n: int) -> list[ConversationTurn]:
    return [
        ConversationTurn(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}", timestamp=i)
        for i in range(n)
    ]


# ===========================================================================
# Parsing
# ===========================================================================


class TestParseExtraction:
    def test_bare_json(self):
        extraction = parse_extraction(extraction_json())
        assert extraction.current_focus == "login bug"
        assert extraction.important_files[0].file_path == "auth/verify.py"

    def test_fenced_json(self):
        extraction = parse_extraction("```json\n" + extraction_json() + "\n```")
        assert extraction.project_name == "proj"

    def test_json_inside_chatter(self):
        extraction = parse_extraction("Here you go:\n" + extraction_json() + "\nHope that helps")
        assert extraction.session_summary.startswith("Fixed password")

    def test_legacy_key_decisions_and_summary(self):
        reply = json.dumps(
            {
                "keyDecisions": [{"decision": "Use SQLite"}],
                "recentSessions": [{"date": "d", "summary": "Older summary shape"}],
            }
        )
        extraction = parse_extraction(reply)
        assert extraction.decisions[0].decision == "Use SQLite"
        assert extraction.session_summary == "Older summary shape"

    def test_null_summary_is_accepted(self):
        extraction = parse_extraction(extraction_json(sessionSummary=None))
        assert extraction.session_summary is None
        assert extraction.current_focus == "login bug"

    @pytest.mark.parametrize("reply", ["", "   ", "not json at all", "[1, 2]", '{"stack": "python"}'])
    def test_malformed_replies_raise(self, reply):
        with pytest.raises(ValueError):
            parse_extraction(reply)


class TestMerge:
    def test_missing_fields_keep_existing(self):
        memory = ProjectMemory(project_name="p", project_path="/p", gotchas=["keep me"], stack=["go"])
        merged = merge_extraction(memory, MemoryExtraction(description="new"))
        assert merged.gotchas == ["keep me"]
        assert merged.stack == ["go"]
        assert merged.description == "new"

    def test_focus_change_repairs_history(self):
        memory = ProjectMemory(project_name="p", project_path="/p", current_focus="auth")
        merged = merge_extraction(memory, MemoryExtraction(current_focus="billing"))
        assert merged.current_focus == "billing"
        assert merged.focus_history == ["auth"]

    def test_summarizer_history_containing_current_is_repaired(self):
        memory = ProjectMemory(project_name="p", project_path="/p", current_focus="auth")
        merged = merge_extraction(
            memory, MemoryExtraction(current_focus="auth", focus_history=["auth", "ui", "ui"])
        )
        assert merged.focus_history == ["ui"]

    def test_upsert_replaces_same_session_and_caps(self):
        sessions = [RecentSession(date=str(i), summary=f"s{i}", session_id=i) for i in range(5)]
        updated = upsert_recent_session(sessions, RecentSession(date="x", summary="redo", session_id=2))
        assert [s.session_id for s in updated] == [0, 1, 3, 4, 2]
        updated = upsert_recent_session(updated, RecentSession(date="y", summary="new", session_id=9))
        assert len(updated) == MAX_RECENT_SESSIONS
        assert updated[-1].session_id == 9


# ===========================================================================
# Orchestrator
# ===========================================================================


class TestTooShort:
    def test_short_transcript_never_calls_summarizer(self, store, orchestrator, summarizer, webhook):
        session_id = store.create_session("claude")
        outcome = orchestrator.compress("hi", session_id=session_id, log_path="/logs/a.jsonl")

        assert outcome.status is CompressionStatus.TOO_SHORT
        assert summarizer.calls == []
        assert webhook.sent == []
        record = store.get_session(session_id)
        assert record.is_finalized
        assert record.summary == TOO_SHORT_SUMMARY

    def test_short_snapshot_changes_nothing(self, store, orchestrator, summarizer):
        outcome = orchestrator.compress("   tiny   ", partial=True)
        assert outcome.status is CompressionStatus.TOO_SHORT
        assert outcome.partial
        assert summarizer.calls == []


class TestFinalCompression:
    def test_success_updates_memory_and_finalizes(self, store, orchestrator, summarizer, webhook):
        session_id = store.create_session("claude")
        outcome = orchestrator.compress(
            LONG_TRANSCRIPT, session_id=session_id, log_path="/logs/a.jsonl", turns=_turns(4)
        )

        assert outcome.status is CompressionStatus.COMPRESSED
        assert outcome.turns_saved == 4
        memory = store.load()
        assert memory.current_focus == "login bug"
        assert memory.pending_tasks == ["add regression test for login"]
        assert memory.last_session.summary.startswith("Fixed password verification")
        assert memory.last_session.session_id == session_id
        assert len(memory.last_conversation_turns) == 4

        record = store.get_session(session_id)
        assert record.summary == outcome.summary
        assert not record.failed
        assert len(record.turns) == 4

        [(url, payload)] = webhook.sent
        assert url == "http://hooks.test/memex"
        assert payload["event"] == "session_end"
        assert payload["summary"] == outcome.summary

    def test_prompt_carries_redacted_tail_and_existing_memory(self, store, orchestrator, summarizer):
        memory = store.init()
        memory.gotchas = ["known gotcha"]
        store.save(memory)
        secret = "<memex:skip>API_KEY=sk-live-123</memex:skip>"
        transcript = "x" * (TRANSCRIPT_TAIL_CHARS + 500) + secret + " and then some more work"

        orchestrator.compress(transcript)

        [(messages, system_prompt)] = summarizer.calls
        prompt = messages[0]["content"]
        assert "memory manager" in system_prompt
        assert "sk-live-123" not in prompt
        assert SKIP_PLACEHOLDER in prompt
        assert "known gotcha" in prompt
        assert "x" * (TRANSCRIPT_TAIL_CHARS + 1) not in prompt

    def test_git_context_is_included(self, store, summarizer):
        def git(cwd):
            return GitContext(branch="feature/login", recent_commits=["abc fix"], changed_files=["a.py"])

        orchestrator = CompressionOrchestrator(store, summarizer, git_context=git)
        orchestrator.compress(LONG_TRANSCRIPT)
        prompt = summarizer.calls[0][0][0]["content"]
        assert "Git branch: feature/login" in prompt

    def test_turns_are_redacted_and_capped(self, store, orchestrator):
        turns = _turns(MAX_CONVERSATION_TURNS + 10)
        turns[-1] = ConversationTurn(role="user", content="<memex:skip>pw</memex:skip>", timestamp=99)
        outcome = orchestrator.compress(LONG_TRANSCRIPT, turns=turns)
        saved = outcome.memory.last_conversation_turns
        assert len(saved) == MAX_CONVERSATION_TURNS
        assert saved[-1].content == SKIP_PLACEHOLDER

    def test_no_turns_keeps_previous_turns(self, store, orchestrator):
        orchestrator.compress(LONG_TRANSCRIPT, turns=_turns(3))
        outcome = orchestrator.compress(LONG_TRANSCRIPT)
        assert len(outcome.memory.last_conversation_turns) == 3

    def test_missing_summary_uses_placeholder(self, store, summarizer):
        summarizer.reply = extraction_json(sessionSummary="")
        outcome = CompressionOrchestrator(store, summarizer, git_context=None).compress(LONG_TRANSCRIPT)
        assert outcome.summary == EMPTY_SUMMARY

    def test_recompressing_same_session_replaces_entry(self, store, orchestrator):
        session_id = store.create_session("claude")
        orchestrator.compress(LONG_TRANSCRIPT, session_id=session_id)
        orchestrator.compress(LONG_TRANSCRIPT, session_id=session_id)
        assert len(store.load().recent_sessions) == 1

    def test_recent_sessions_capped(self, store, orchestrator):
        for _ in range(MAX_RECENT_SESSIONS + 2):
            orchestrator.compress(LONG_TRANSCRIPT, session_id=store.create_session("claude"))
        assert len(store.load().recent_sessions) == MAX_RECENT_SESSIONS


class TestFailures:
    def test_parse_failure_is_persisted(self, store, webhook):
        summarizer = FakeSummarizer(reply="I could not summarize that, sorry.")
        orchestrator = CompressionOrchestrator(
            store, summarizer, webhook_url="http://hooks.test", git_context=None, webhook_sender=webhook
        )
        session_id = store.create_session("claude")

        with pytest.raises(CompressionParseError) as exc_info:
            orchestrator.compress(LONG_TRANSCRIPT, session_id=session_id, log_path="/logs/a.jsonl")

        assert exc_info.value.reason
        last = store.load().last_session
        assert last.failed
        assert last.summary == FAILED_SUMMARY
        assert last.reason == exc_info.value.reason
        assert last.log_file == "/logs/a.jsonl"
        record = store.get_session(session_id)
        assert record.failed and record.is_finalized
        assert webhook.sent == []

    @pytest.mark.parametrize(
        "error",
        [LLMAuthError("bad key"), httpx.ConnectError("refused"), httpx.InvalidURL("no scheme"), RuntimeError("plugin bug")],
    )
    def test_transport_failure_is_persisted(self, store, error):
        orchestrator = CompressionOrchestrator(store, FakeSummarizer(error=error), git_context=None)
        session_id = store.create_session("claude")
        with pytest.raises(SummarizerTransportError):
            orchestrator.compress(LONG_TRANSCRIPT, session_id=session_id)
        assert store.load().last_session.failed
        assert store.get_session(session_id).failed

    def test_html_reply_from_proxy_is_a_recorded_failure(self, store):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>proxy login</html>")
        )
        client = OpenAIClient(api_key="sk", transport=transport, max_retries=1)
        orchestrator = CompressionOrchestrator(store, LLMSummarizer(client), git_context=None)
        session_id = store.create_session("claude")

        with pytest.raises(SummarizerTransportError) as exc_info:
            orchestrator.compress(LONG_TRANSCRIPT, session_id=session_id)

        assert "LLMResponseError" in exc_info.value.reason
        [entry] = store.load().recent_sessions
        assert entry.failed and entry.session_id == session_id
        assert store.get_session(session_id).is_finalized

    def test_empty_summary_on_null(self, store):
        summarizer = FakeSummarizer(reply=extraction_json(sessionSummary=None))
        outcome = CompressionOrchestrator(store, summarizer, git_context=None).compress(LONG_TRANSCRIPT)
        assert outcome.summary == EMPTY_SUMMARY

    def test_failed_snapshot_persists_nothing(self, store):
        orchestrator = CompressionOrchestrator(store, FakeSummarizer(reply="nope"), git_context=None)
        with pytest.raises(CompressionParseError):
            orchestrator.compress(LONG_TRANSCRIPT, partial=True)
        assert store.load().recent_sessions == []

    def test_retry_after_failure_replaces_failed_entry(self, store):
        session_id = store.create_session("claude")
        failing = CompressionOrchestrator(store, FakeSummarizer(reply="nope"), git_context=None)
        with pytest.raises(CompressionParseError):
            failing.compress(LONG_TRANSCRIPT, session_id=session_id)

        working = CompressionOrchestrator(store, FakeSummarizer(), git_context=None)
        working.compress(LONG_TRANSCRIPT, session_id=session_id)
        sessions = store.load().recent_sessions
        assert len(sessions) == 1
        assert not sessions[0].failed
        assert not store.get_session(session_id).failed


class TestSnapshot:
    def test_snapshot_updates_fields_only(self, store, orchestrator, webhook):
        outcome = orchestrator.compress(LONG_TRANSCRIPT, partial=True, turns=_turns(2))
        assert outcome.partial
        memory = store.load()
        assert memory.current_focus == "login bug"
        assert memory.recent_sessions == []
        assert memory.last_conversation_turns == []
        assert webhook.sent[0][1]["event"] == "snapshot"

    def test_snapshot_prompt_says_in_progress(self, store, orchestrator, summarizer):
        orchestrator.compress(LONG_TRANSCRIPT, partial=True)
        assert "still in progress" in summarizer.calls[0][0][0]["content"]
