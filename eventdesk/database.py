"""Engine and session factory for the EventDesk SQLite database."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .config import settings

DATABASE_URL = f"sqlite:///{settings.database_path}"
SQLITE_BUSY_TIMEOUT_MS = 5000


def configure_sqlite(engine: Engine) -> Engine:
    """Turn on foreign keys and a busy timeout for every new connection."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()

    return engine


engine = configure_sqlite(
    create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        future=True,
    )
)
SessionLocal = scoped_session(
    sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )
)


@contextmanager
def get_session():
    """Yield a session that commits on success and rolls back on error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
