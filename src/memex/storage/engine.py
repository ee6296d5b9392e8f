"""Engine and session factory for Memex storage.

Provides SQLite engine creation with performance pragmas,
session factory creation, and database initialization.
"""

from __future__ import annotations

from sqlalchemy import Engine, create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker

from memex.storage.schema import Base, MemexMetaRow

SCHEMA_VERSION = "1"


def create_memex_engine(db_path: str = ":memory:") -> Engine:
    """Create a SQLAlchemy engine for a Memex database.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        Configured SQLAlchemy Engine with WAL, busy_timeout and foreign
        keys enabled on every connection.
    """
    if db_path == ":memory:":
        engine = create_engine("sqlite://", echo=False)
    else:
        engine = create_engine(f"sqlite:///{db_path}", echo=False)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to the given engine.

    Uses expire_on_commit=False to prevent lazy-load issues
    when accessing attributes after commit.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables and record the schema version for new databases."""
    Base.metadata.create_all(engine)

    SessionLocal = create_session_factory(engine)
    with SessionLocal() as session:
        existing = session.execute(
            select(MemexMetaRow).where(MemexMetaRow.key == "schema_version")
        ).scalar_one_or_none()
        if existing is None:
            session.add(MemexMetaRow(key="schema_version", value=SCHEMA_VERSION))
            session.commit()
