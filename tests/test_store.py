"""Tests for memex.storage: MemoryStore over a file-backed SQLite database."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import pytest
from sqlalchemy import update

from memex.exceptions import SessionNotFoundError, StoreError
from memex.models.memory import ConversationTurn, KeyDecision, RecentSession
from memex.storage.schema import SessionRow
from memex.storage.store import MemoryStore, summary_snippet


class TestMemory:
    def test_load_missing_is_none(self, store):
        assert store.load() is None
        assert not store.exists()

    def test_init_uses_directory_name(self, store, project_dir):
        memory = store.init()
        assert memory.project_name == "proj"
        assert memory.project_path == str(project_dir.resolve())
        assert memory.is_empty
        assert store.exists()

    def test_save_and_load_roundtrip(self, store):
        memory = store.init()
        memory.stack = ["python"]
        memory.decisions = [KeyDecision(decision="Use SQLite", reason="single file")]
        memory.recent_sessions = [RecentSession(date="2026-01-01", summary="hello", session_id=1)]
        memory.last_conversation_turns = [ConversationTurn(role="user", content="hi", timestamp=5)]
        store.save(memory)

        loaded = store.load()
        assert loaded.stack == ["python"]
        assert loaded.decisions[0].reason == "single file"
        assert loaded.recent_sessions[0].session_id == 1
        assert loaded.last_conversation_turns[0].timestamp == 5
        assert loaded.last_updated

    def test_load_or_init_creates_once(self, store):
        first = store.load_or_init()
        first.description = "kept"
        store.save(first)
        assert store.load_or_init().description == "kept"

    def test_separate_projects_are_isolated(self, tmp_path):
        with MemoryStore.open(tmp_path / "a") as a, MemoryStore.open(tmp_path / "b") as b:
            memory = a.init()
            memory.current_focus = "only in a"
            a.save(memory)
            assert b.load() is None


class TestLegacyMigration:
    def test_memory_json_is_imported_and_renamed(self, store):
        legacy = store.memex_dir / "memory.json"
        legacy.write_text(
            json.dumps(
                {
                    "projectName": "old",
                    "currentFocus": "porting",
                    "keyDecisions": [{"decision": "Keep JSON"}],
                    "lastConversation": [{"role": "user", "content": "hey", "ts": 9}],
                }
            ),
            encoding="utf-8",
        )

        memory = store.load()

        assert memory.project_name == "old"
        assert memory.current_focus == "porting"
        assert memory.decisions[0].decision == "Keep JSON"
        assert memory.last_conversation_turns[0].timestamp == 9
        assert not legacy.exists()
        assert (store.memex_dir / "memory.json.bak").exists()

    def test_unreadable_legacy_file_starts_fresh(self, store):
        (store.memex_dir / "memory.json").write_text("{broken", encoding="utf-8")
        assert store.load() is None

    def test_existing_row_wins_over_legacy_file(self, store):
        memory = store.init()
        memory.current_focus = "db"
        store.save(memory)
        (store.memex_dir / "memory.json").write_text('{"currentFocus": "json"}', encoding="utf-8")
        assert store.load().current_focus == "db"


class TestSessions:
    def test_create_and_finalize(self, store):
        session_id = store.create_session("claude")
        record = store.get_session(session_id)
        assert record.agent_command == "claude"
        assert not record.is_finalized

        turns = [ConversationTurn(role="user", content="q", timestamp=1)]
        store.finalize_session(session_id, "did things", "/logs/x.jsonl", turns)
        record = store.get_session(session_id)
        assert record.is_finalized
        assert record.summary == "did things"
        assert record.log_path == "/logs/x.jsonl"
        assert [t.content for t in record.turns] == ["q"]

    def test_second_finalize_keeps_end_time(self, store):
        session_id = store.create_session("claude")
        first = store.finalize_session(session_id, "failed", None, failed=True)
        second = store.finalize_session(session_id, "recovered", "/logs/y.jsonl")
        assert second.ended_at == first.ended_at
        assert second.summary == "recovered"
        assert not second.failed

    def test_finalize_without_turns_keeps_existing(self, store):
        session_id = store.create_session("claude")
        store.finalize_session(
            session_id, "a", None, [ConversationTurn(role="user", content="q", timestamp=1)]
        )
        store.finalize_session(session_id, "b", None)
        assert len(store.get_session(session_id).turns) == 1

    def test_unknown_session(self, store):
        with pytest.raises(SessionNotFoundError):
            store.get_session(404)
        with pytest.raises(SessionNotFoundError):
            store.finalize_session(404, "x", None)

    def test_list_newest_first(self, store):
        ids = [store.create_session("claude") for _ in range(3)]
        assert [r.id for r in store.list_sessions()] == list(reversed(ids))
        assert len(store.list_sessions(limit=2)) == 2

    def test_prune_old_sessions(self, store):
        old = store.create_session("claude")
        new = store.create_session("claude")
        with store._transaction() as session:
            session.execute(
                update(SessionRow)
                .where(SessionRow.id == old)
                .values(started_at=datetime(2020, 1, 1))
            )
        assert store.prune_sessions(30) == 1
        assert [r.id for r in store.list_sessions()] == [new]


class TestSearch:
    @pytest.fixture
    def searchable(self, store):
        for agent, summary in [
            ("claude", "Fixed the login bug in auth/verify.py"),
            ("aider", "Styled the checkout footer"),
            ("claude", "Added 100% coverage for LOGIN flows"),
        ]:
            store.finalize_session(store.create_session(agent), summary, None)
        return store

    def test_any_word_matches_case_insensitively(self, searchable):
        hits = searchable.search_sessions("login footer")
        assert [h.record.summary for h in hits] == [
            "Added 100% coverage for LOGIN flows",
            "Styled the checkout footer",
            "Fixed the login bug in auth/verify.py",
        ]

    def test_wildcards_are_literal(self, searchable):
        [hit] = searchable.search_sessions("100%")
        assert hit.record.agent_command == "claude"
        assert searchable.search_sessions("_") == []

    def test_no_match_and_blank_query(self, searchable):
        assert searchable.search_sessions("kubernetes") == []
        assert searchable.search_sessions("   ") == []

    def test_limit(self, searchable):
        assert len(searchable.search_sessions("the", limit=1)) == 1

    def test_other_projects_are_not_searched(self, searchable, tmp_path):
        other_dir = tmp_path / "other"
        other_dir.mkdir()
        with MemoryStore.open(other_dir) as other:
            assert other.search_sessions("login") == []

    def test_snippet_brackets_first_match(self, searchable):
        [hit] = searchable.search_sessions("verify")
        assert hit.snippet == "Fixed the login bug in [auth/verify.py]"


class TestSummarySnippet:
    def test_window_around_match(self):
        summary = " ".join(f"w{i}" for i in range(30))
        snippet = summary_snippet(summary, ["w15"], width=4)
        assert snippet == "...w13 w14 [w15] w16..."

    def test_match_at_start(self):
        assert summary_snippet("alpha beta gamma", ["ALPHA"], width=2) == "[alpha] beta..."

    def test_no_match_falls_back_to_leading_words(self):
        assert summary_snippet("alpha beta gamma", ["zeta"], width=2) == "alpha beta"


class TestClear:
    def test_clear_removes_memory_sessions_and_logs(self, store):
        store.init()
        store.create_session("claude")
        (store.sessions_dir / "a.jsonl").write_text("{}", encoding="utf-8")

        store.clear()

        assert store.load() is None
        assert store.list_sessions() == []
        assert not (store.memex_dir / "sessions").exists()

    def test_clear_keep_sessions_resets_memory_only(self, store):
        memory = store.init()
        memory.current_focus = "x"
        store.save(memory)
        session_id = store.create_session("claude")

        store.clear(keep_sessions=True)

        assert store.load().current_focus == ""
        assert store.get_session(session_id).id == session_id


class TestLifecycle:
    def test_closed_store_raises(self, project_dir):
        s = MemoryStore.open(project_dir)
        s.close()
        with pytest.raises(StoreError):
            s.load()

    def test_close_is_idempotent(self, project_dir):
        s = MemoryStore.open(project_dir)
        s.close()
        s.close()

    def test_started_at_is_utc_iso(self, store):
        record = store.get_session(store.create_session("claude"))
        started = datetime.fromisoformat(record.started_at)
        assert started.utcoffset() == timedelta(0)
