"""
Database connection and session management for the OKR store.
Uses SQLModel; the URL comes from okr_tracker.config (SQLite by default).
"""
from sqlmodel import create_engine, Session, SQLModel
from contextlib import contextmanager

from okr_tracker.config import DATABASE_URL, SQL_ECHO


def build_engine(url: str = DATABASE_URL, echo: bool = SQL_ECHO):
    """Create an engine, with the thread setting SQLite needs under Streamlit."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=echo, connect_args=connect_args)


engine = build_engine()


def create_db_and_tables():
    """Create all database tables if they don't exist."""
    from okr_tracker.models import (  # noqa: F401
        Team, Objective, KeyResult, BigRock, CheckIn, ImportHistory
    )
    SQLModel.metadata.create_all(engine)


@contextmanager
def get_session_context():
    """Context manager for database sessions with automatic commit/rollback."""
    # expire_on_commit=False allows using objects after session is closed (DetachedInstanceError fix)
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database():
    """Initialize the database - call this on app startup."""
    create_db_and_tables()
