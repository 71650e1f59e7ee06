"""
Database engine, session management, and base model.

This module is the foundation for all database operations.
Every model inherits from Base. Every request gets a session
from get_db(); library callers use session_scope().
"""

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from property_ledger.config import get_settings

settings = get_settings()

# --- Engine ---
# pool_pre_ping=True tests connections before using them,
# which handles a database restart or a stale connection.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# --- Session Factory ---
# autocommit=False: the caller decides when a unit of work is
# committed, so an entry and its lines land all-or-nothing.
# autoflush=False: SQL is only sent on explicit flush/commit.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


# Cached balances live for one transaction. A rollback throws away
# flushed rows they may include, and once a transaction ends other
# writers' commits must become visible.
@event.listens_for(Session, "after_commit")
@event.listens_for(Session, "after_rollback")
def _drop_cached_balances(session):
    session.info.pop("balance_cache", None)


@contextmanager
def session_scope(factory=SessionLocal):
    """
    Run one unit of work against the ledger.

    Commits when the block exits normally, rolls back on any
    exception, and always closes the session.
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally pattern ensures the session is always
    closed, even when the endpoint raises.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
