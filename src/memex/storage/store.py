"""MemoryStore -- per-project handle over the Memex database.

Every operation that touches durable memory receives a MemoryStore
explicitly. One store is bound to one project directory and its
``.memex/memex.db``; there is no process-wide "current database".

Usage::

    with MemoryStore.open("/path/to/project") as store:
        memory = store.load() or store.init()
        session_id = store.create_session("claude")
        ...
        store.finalize_session(session_id, "Added login flow", log_path, turns)
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from memex.constants import (
    DB_FILE_NAME,
    LEGACY_MEMORY_FILE,
    MAX_RECENT_SESSIONS,
    MEMEX_DIR_NAME,
    SEARCH_RESULT_LIMIT,
    SEARCH_SNIPPET_WORDS,
    SESSIONS_DIR_NAME,
)
from memex.exceptions import SessionNotFoundError, StoreError
from memex.models.memory import (
    ConversationTurn,
    ImportantFile,
    KeyDecision,
    ProjectMemory,
    RecentSession,
)
from memex.models.session import SessionRecord, SessionSearchHit
from memex.storage.engine import create_memex_engine, create_session_factory, init_db
from memex.storage.schema import ConversationTurnRow, ProjectRow, SessionRow
from memex.storage.sqlite import (
    SqliteProjectRepository,
    SqliteSessionRepository,
    SqliteTurnRepository,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def memex_dir_for(project_path: str | os.PathLike[str]) -> Path:
    return Path(project_path) / MEMEX_DIR_NAME


def _utcnow() -> datetime:
    # SQLite DateTime columns are naive; everything stored is UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat(timespec="milliseconds")


class MemoryStore:
    """Durable memory and session records for one project."""

    def __init__(
        self,
        project_path: str | os.PathLike[str],
        engine: Engine,
        session_factory: sessionmaker[Session],
    ) -> None:
        self.project_path = str(Path(project_path).resolve())
        self._engine = engine
        self._session_factory = session_factory
        self._closed = False

    @classmethod
    def open(
        cls,
        project_path: str | os.PathLike[str],
        *,
        db_path: str | None = None,
    ) -> MemoryStore:
        """Open (creating if needed) the store for a project.

        Args:
            project_path: Project directory. ``.memex/`` is created inside it.
            db_path: Override the database location; ``":memory:"`` for tests.
        """
        memex_dir = memex_dir_for(project_path)
        memex_dir.mkdir(parents=True, exist_ok=True)
        if db_path is None:
            db_path = str(memex_dir / DB_FILE_NAME)
        engine = create_memex_engine(db_path)
        init_db(engine)
        return cls(project_path, engine, create_session_factory(engine))

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def memex_dir(self) -> Path:
        return memex_dir_for(self.project_path)

    @property
    def sessions_dir(self) -> Path:
        path = self.memex_dir / SESSIONS_DIR_NAME
        path.mkdir(parents=True, exist_ok=True)
        return path

    # ------------------------------------------------------------------
    # Project memory: load / save / init
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        with self._transaction() as session:
            return SqliteProjectRepository(session).get(self.project_path) is not None

    def load(self) -> ProjectMemory | None:
        """Load project memory, migrating a legacy ``memory.json`` first."""
        self._migrate_legacy_json()
        with self._transaction() as session:
            row = SqliteProjectRepository(session).get(self.project_path)
            if row is None:
                return None
            return _row_to_memory(row)

    def save(self, memory: ProjectMemory) -> None:
        """Persist memory as a whole-row rewrite (last writer wins)."""
        now = _utcnow()
        memory.last_updated = _iso(now) or ""
        with self._transaction() as session:
            repo = SqliteProjectRepository(session)
            existing = repo.get(self.project_path)
            created_at = existing.created_at if existing is not None else now
            repo.save(_memory_to_row(memory, self.project_path, created_at, now))

    def init(self) -> ProjectMemory:
        """Create and persist default (empty) memory for the project."""
        memory = ProjectMemory(
            project_name=Path(self.project_path).name,
            project_path=self.project_path,
        )
        self.save(memory)
        return memory

    def load_or_init(self) -> ProjectMemory:
        return self.load() or self.init()

    def clear(self, *, keep_sessions: bool = False) -> None:
        """Wipe project memory.

        With ``keep_sessions`` only the memory fields are reset. Otherwise
        session records and the session log directory go too.
        """
        if keep_sessions:
            self.init()
            return
        with self._transaction() as session:
            SqliteProjectRepository(session).delete(self.project_path)
        shutil.rmtree(self.memex_dir / SESSIONS_DIR_NAME, ignore_errors=True)

    # ------------------------------------------------------------------
    # Session records
    # ------------------------------------------------------------------

    def create_session(self, agent: str) -> int:
        """Open a session record, creating the project row if needed."""
        if not self.exists():
            self.init()
        with self._transaction() as session:
            row = SqliteSessionRepository(session).create(self.project_path, agent, _utcnow())
            logger.debug("Created session %d for %s", row.id, self.project_path)
            return row.id

    def finalize_session(
        self,
        session_id: int,
        summary: str,
        log_path: str | None,
        turns: Sequence[ConversationTurn] = (),
        *,
        failed: bool = False,
    ) -> SessionRecord:
        """Close a session record.

        ``ended_at`` is set only by the first finalization; repeated calls
        update summary, log path, failure flag and (when given) turns.
        """
        with self._transaction() as session:
            row = SqliteSessionRepository(session).get(session_id)
            if row is None:
                raise SessionNotFoundError(session_id)
            if row.ended_at is None:
                row.ended_at = max(_utcnow(), row.started_at)
            row.summary = summary
            row.log_file = log_path
            row.failed = failed
            if turns:
                SqliteTurnRepository(session).replace_for_session(
                    session_id,
                    [
                        ConversationTurnRow(role=t.role, content=t.content, ts=t.timestamp)
                        for t in turns
                    ],
                )
            session.flush()
            return _row_to_record(row)

    def get_session(self, session_id: int) -> SessionRecord:
        with self._transaction() as session:
            row = SqliteSessionRepository(session).get(session_id)
            if row is None:
                raise SessionNotFoundError(session_id)
            turn_rows = SqliteTurnRepository(session).list_for_session(session_id)
            return _row_to_record(row, turn_rows)

    def list_sessions(self, limit: int | None = 20) -> list[SessionRecord]:
        """Session records, newest first (turns not loaded)."""
        with self._transaction() as session:
            rows = SqliteSessionRepository(session).list_for_project(self.project_path, limit)
            return [_row_to_record(r) for r in rows]

    def search_sessions(
        self, query: str, limit: int | None = SEARCH_RESULT_LIMIT
    ) -> list[SessionSearchHit]:
        """Sessions whose summary contains any word of ``query``, newest first.

        Matching is case-insensitive. Each hit carries a short excerpt of
        the summary with the first matching word in brackets.
        """
        terms = query.split()
        with self._transaction() as session:
            rows = SqliteSessionRepository(session).search(self.project_path, terms, limit)
            return [
                SessionSearchHit(_row_to_record(r), summary_snippet(r.summary, terms))
                for r in rows
            ]

    def prune_sessions(self, keep_days: int) -> int:
        """Delete sessions started more than ``keep_days`` days ago."""
        cutoff = _utcnow() - timedelta(days=keep_days)
        with self._transaction() as session:
            return SqliteSessionRepository(session).delete_older_than(self.project_path, cutoff)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if not self._closed:
            self._engine.dispose()
            self._closed = True

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        if self._closed:
            raise StoreError("MemoryStore is closed")
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Memory store operation failed: {exc}") from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def _migrate_legacy_json(self) -> None:
        """Import ``.memex/memory.json`` (pre-database format) once."""
        legacy = self.memex_dir / LEGACY_MEMORY_FILE
        if not legacy.is_file():
            return
        with self._transaction() as session:
            if SqliteProjectRepository(session).get(self.project_path) is not None:
                return
        try:
            data = json.loads(legacy.read_text(encoding="utf-8"))
            memory = _legacy_to_memory(data, self.project_path)
        except (OSError, ValueError, ValidationError):
            # Worst case is a fresh start
            logger.warning("Could not migrate legacy %s; starting fresh", legacy, exc_info=True)
            return
        self.save(memory)
        legacy.rename(legacy.with_name(legacy.name + ".bak"))
        logger.info("Migrated legacy memory file %s", legacy)


# ---------------------------------------------------------------------------
# Row <-> model conversion
# ---------------------------------------------------------------------------


def _row_to_memory(row: ProjectRow) -> ProjectMemory:
    return ProjectMemory(
        project_name=row.name,
        project_path=row.path,
        stack=list(row.stack or []),
        description=row.description,
        decisions=[KeyDecision.model_validate(d) for d in row.key_decisions or []],
        current_focus=row.current_focus,
        focus_history=list(row.focus_history or []),
        pending_tasks=list(row.pending_tasks or []),
        important_files=[ImportantFile.model_validate(f) for f in row.important_files or []],
        gotchas=list(row.gotchas or []),
        recent_sessions=[RecentSession.model_validate(s) for s in row.recent_sessions or []],
        last_conversation_turns=[
            ConversationTurn.model_validate(t) for t in row.last_conversation or []
        ],
        last_updated=_iso(row.updated_at) or "",
    )


def _memory_to_row(
    memory: ProjectMemory, path: str, created_at: datetime, updated_at: datetime
) -> ProjectRow:
    def dump(items: Sequence) -> list:
        return [item.model_dump(by_alias=True) for item in items]

    return ProjectRow(
        path=path,
        name=memory.project_name,
        description=memory.description,
        stack=list(memory.stack),
        current_focus=memory.current_focus,
        focus_history=list(memory.focus_history),
        pending_tasks=list(memory.pending_tasks),
        gotchas=list(memory.gotchas),
        important_files=dump(memory.important_files),
        key_decisions=dump(memory.decisions),
        recent_sessions=dump(memory.recent_sessions[-MAX_RECENT_SESSIONS:]),
        last_conversation=dump(memory.last_conversation_turns),
        created_at=created_at,
        updated_at=updated_at,
    )


def summary_snippet(summary: str, terms: Sequence[str], width: int = SEARCH_SNIPPET_WORDS) -> str:
    """Up to ``width`` words of ``summary`` around the first word matching a term."""
    words = summary.split()
    lowered = [t.lower() for t in terms]
    hit = next(
        (i for i, w in enumerate(words) if any(t in w.lower() for t in lowered)),
        None,
    )
    if hit is None:
        return " ".join(words[:width])
    start = max(0, hit - width // 2)
    end = min(len(words), start + width)
    start = max(0, end - width)
    excerpt = words[start:end]
    excerpt[hit - start] = f"[{excerpt[hit - start]}]"
    text = " ".join(excerpt)
    if start > 0:
        text = "..." + text
    if end < len(words):
        text += "..."
    return text


def _row_to_record(
    row: SessionRow, turn_rows: Sequence[ConversationTurnRow] = ()
) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        project_path=row.project_path,
        agent_command=row.agent,
        started_at=_iso(row.started_at) or "",
        ended_at=_iso(row.ended_at),
        summary=row.summary,
        log_path=row.log_file,
        failed=row.failed,
        turns=[
            ConversationTurn(role=t.role, content=t.content, timestamp=t.ts)  # type: ignore[arg-type]
            for t in turn_rows
        ],
    )


def _legacy_to_memory(data: dict, project_path: str) -> ProjectMemory:
    """Map the pre-database JSON layout onto ProjectMemory."""
    data = dict(data)
    if "keyDecisions" in data and "decisions" not in data:
        data["decisions"] = data.pop("keyDecisions")
    if "lastConversation" in data and "lastConversationTurns" not in data:
        data["lastConversationTurns"] = [
            {"role": t.get("role"), "content": t.get("content"), "timestamp": t.get("ts", 0)}
            for t in data.pop("lastConversation") or []
        ]
    data["projectPath"] = project_path
    data.setdefault("projectName", Path(project_path).name)
    return ProjectMemory.model_validate(data)
