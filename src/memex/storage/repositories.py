"""Abstract repository interfaces for Memex storage.

Defines ABC interfaces for all database operations. No SQLAlchemy
imports here -- pure abstract contracts.

Concrete implementations are in sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from datetime import datetime

    from memex.storage.schema import ConversationTurnRow, ProjectRow, SessionRow


class ProjectRepository(ABC):
    """Abstract interface for project storage operations."""

    @abstractmethod
    def get(self, path: str) -> ProjectRow | None:
        """Get a project by path. Returns None if not found."""
        ...

    @abstractmethod
    def save(self, project: ProjectRow) -> None:
        """Insert or update a project row."""
        ...

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete a project and, via cascade, its sessions and turns."""
        ...


class SessionRepository(ABC):
    """Abstract interface for session storage operations."""

    @abstractmethod
    def create(self, project_path: str, agent: str, started_at: datetime) -> SessionRow:
        """Insert a new open session and return it."""
        ...

    @abstractmethod
    def get(self, session_id: int) -> SessionRow | None:
        """Get a session by id. Returns None if not found."""
        ...

    @abstractmethod
    def list_for_project(self, project_path: str, limit: int | None = None) -> Sequence[SessionRow]:
        """Sessions for a project, newest first."""
        ...

    @abstractmethod
    def delete_older_than(self, project_path: str, cutoff: datetime) -> int:
        """Delete sessions started before cutoff. Returns the count removed."""
        ...

    @abstractmethod
    def search(
        self, project_path: str, terms: Sequence[str], limit: int | None = None
    ) -> Sequence[SessionRow]:
        """Sessions whose summary contains any of the terms, newest first."""
        ...


class TurnRepository(ABC):
    """Abstract interface for conversation-turn storage."""

    @abstractmethod
    def replace_for_session(self, session_id: int, turns: Sequence[ConversationTurnRow]) -> None:
        """Replace all turns of a session with the given rows, in order."""
        ...

    @abstractmethod
    def list_for_session(self, session_id: int) -> Sequence[ConversationTurnRow]:
        """Turns of a session in chronological (insertion) order."""
        ...
