"""
Traveler Database Session Management.

``Database`` owns the engine and session factory and is handed to the
stores by the runtime; there is no module-level session singleton.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from typing import Generator

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from traveler.db.base import Base, create_db_engine
from traveler.engine.config import DatabaseConfig


class Database:
    """
    Engine + session factory for the document store.

    Usage:
        db = Database.from_config(config.database, create_tables=True)
        with db.session_scope() as session:
            session.get(FormRow, form_id)
    """

    def __init__(self, url: str, create_tables: bool = False, **engine_options):
        self._engine = create_db_engine(url, **engine_options)
        self._factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        # SQLite shares one connection across worker threads; serialize access
        self._lock = threading.RLock() if url.startswith("sqlite") else None
        if create_tables:
            self.create_tables()

    @classmethod
    def from_config(cls, config: DatabaseConfig, create_tables: bool = False) -> "Database":
        return cls(
            config.url,
            create_tables=create_tables,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
            pool_recycle=config.pool_recycle,
            pool_pre_ping=config.pool_pre_ping,
        )

    @property
    def engine(self):
        return self._engine

    def create_tables(self) -> None:
        """Create all tables (dev / tests). Production uses managed schemas."""
        import traveler.db.models  # noqa: F401

        Base.metadata.create_all(self._engine)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Session with auto-commit/rollback.

        Usage:
            with db.session_scope() as session:
                row = session.get(UserRow, "alice")
        """
        with self._lock if self._lock is not None else nullcontext():
            session = self._factory()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    def health_check(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    def dispose(self) -> None:
        self._engine.dispose()
