"""Storage layer for Memex.

SQLAlchemy 2.0 schema and repositories over a per-project SQLite database,
fronted by the MemoryStore facade.
"""

from memex.storage.engine import create_memex_engine, create_session_factory, init_db
from memex.storage.store import MemoryStore, memex_dir_for

__all__ = [
    "MemoryStore",
    "create_memex_engine",
    "create_session_factory",
    "init_db",
    "memex_dir_for",
]
