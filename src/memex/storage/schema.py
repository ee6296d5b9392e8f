"""SQLAlchemy ORM schema for Memex.

Defines all database tables: project, sessions, conversation_turns,
_memex_meta. List-valued project fields are stored as JSON columns.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all Memex ORM models."""

    pass


class ProjectRow(Base):
    """Core project metadata, one row per tracked project."""

    __tablename__ = "project"

    path: Mapped[str] = mapped_column(String(1024), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    stack: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_focus: Mapped[str] = mapped_column(Text, nullable=False, default="")
    focus_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    pending_tasks: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    gotchas: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    important_files: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    key_decisions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    recent_sessions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # Cached last N turns for fast resume (the full set lives in conversation_turns)
    last_conversation: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class SessionRow(Base):
    """One agent session (started / ended)."""

    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_path: Mapped[str] = mapped_column(
        String(1024),
        ForeignKey("project.path", ondelete="CASCADE"),
        nullable=False,
    )
    agent: Mapped[str] = mapped_column(String(255), nullable=False, default="claude")
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    log_file: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_sessions_project_started", "project_path", "started_at"),
    )


class ConversationTurnRow(Base):
    """Individual conversation turns per session."""

    __tablename__ = "conversation_turns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    ts: Mapped[int] = mapped_column(BigInteger, nullable=False)


class MemexMetaRow(Base):
    """Key-value metadata (schema version)."""

    __tablename__ = "_memex_meta"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
