"""SQLite implementations of repository interfaces.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from memex.storage.repositories import (
    ProjectRepository,
    SessionRepository,
    TurnRepository,
)
from memex.storage.schema import ConversationTurnRow, ProjectRow, SessionRow


class SqliteProjectRepository(ProjectRepository):
    """SQLite implementation of project repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, path: str) -> ProjectRow | None:
        stmt = select(ProjectRow).where(ProjectRow.path == path)
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, project: ProjectRow) -> None:
        self._session.merge(project)
        self._session.flush()

    def delete(self, path: str) -> None:
        project = self.get(path)
        if project is None:
            return
        # Cascade by hand: sessions -> conversation_turns
        session_ids = select(SessionRow.id).where(SessionRow.project_path == path)
        self._session.execute(
            delete(ConversationTurnRow).where(ConversationTurnRow.session_id.in_(session_ids))
        )
        self._session.execute(delete(SessionRow).where(SessionRow.project_path == path))
        self._session.delete(project)
        self._session.flush()


class SqliteSessionRepository(SessionRepository):
    """SQLite implementation of session repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, project_path: str, agent: str, started_at: datetime) -> SessionRow:
        row = SessionRow(project_path=project_path, agent=agent, started_at=started_at)
        self._session.add(row)
        self._session.flush()
        return row

    def get(self, session_id: int) -> SessionRow | None:
        stmt = select(SessionRow).where(SessionRow.id == session_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def list_for_project(self, project_path: str, limit: int | None = None) -> Sequence[SessionRow]:
        stmt = (
            select(SessionRow)
            .where(SessionRow.project_path == project_path)
            .order_by(SessionRow.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def delete_older_than(self, project_path: str, cutoff: datetime) -> int:
        stale = [
            row.id
            for row in self._session.execute(
                select(SessionRow).where(
                    SessionRow.project_path == project_path,
                    SessionRow.started_at < cutoff,
                )
            ).scalars()
        ]
        if not stale:
            return 0
        self._session.execute(
            delete(ConversationTurnRow).where(ConversationTurnRow.session_id.in_(stale))
        )
        self._session.execute(delete(SessionRow).where(SessionRow.id.in_(stale)))
        self._session.flush()
        return len(stale)

    def search(
        self, project_path: str, terms: Sequence[str], limit: int | None = None
    ) -> Sequence[SessionRow]:
        if not terms:
            return []
        # Escape LIKE wildcards
        patterns = [
            "%" + t.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
            for t in terms
        ]
        stmt = (
            select(SessionRow)
            .where(
                SessionRow.project_path == project_path,
                or_(*(SessionRow.summary.like(p, escape="\\") for p in patterns)),
            )
            .order_by(SessionRow.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.execute(stmt).scalars().all())


class SqliteTurnRepository(TurnRepository):
    """SQLite implementation of conversation-turn repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def replace_for_session(self, session_id: int, turns: Sequence[ConversationTurnRow]) -> None:
        self._session.execute(
            delete(ConversationTurnRow).where(ConversationTurnRow.session_id == session_id)
        )
        for row in turns:
            row.session_id = session_id
            self._session.add(row)
        self._session.flush()

    def list_for_session(self, session_id: int) -> Sequence[ConversationTurnRow]:
        stmt = (
            select(ConversationTurnRow)
            .where(ConversationTurnRow.session_id == session_id)
            .order_by(ConversationTurnRow.id)
        )
        return list(self._session.execute(stmt).scalars().all())
