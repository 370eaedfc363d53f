"""
Engine and session management for the attribution tables.

Uses ATTRIBUTION_DB_URL / DATABASE_URL for PostgreSQL when set; otherwise falls
back to SQLite (ATTRIBUTION_DB_PATH or attribution.db). Every unit of work runs
inside session_scope(): commit on success, rollback on any error, so an intent
claim and its attribution row are persisted together or not at all.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from backend_attribution.attribution_logging import get_logger
from backend_attribution.config.env import get_database_url, mask_database_url
from backend_attribution.database.tables import Base

logger = get_logger(__name__)

# Seconds a SQLite writer waits on a locked database before failing
SQLITE_BUSY_TIMEOUT_SEC = 30

_engine = None
_SessionLocal: sessionmaker | None = None


def _enable_sqlite_foreign_keys(dbapi_conn: Any, connection_record: Any) -> None:
    """SQLite ignores FOREIGN KEY clauses (ON DELETE SET NULL) unless enabled per connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _get_engine():
    """Create or return cached engine."""
    global _engine
    if _engine is None:
        url = get_database_url()
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = SQLITE_BUSY_TIMEOUT_SEC
        _engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        if url.startswith("sqlite"):
            event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
        logger.info("attribution_engine_db", url=mask_database_url(url))
    return _engine


def get_session_factory() -> sessionmaker:
    """Return session factory bound to engine."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=_get_engine(),
        )
    return _SessionLocal


@contextmanager
def session_scope() -> Iterator[Session]:
    """Context manager for a single session. Commits on success, rolls back on error."""
    factory = get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """
    Create attribution tables if they do not exist.
    Uses SQLAlchemy Base.metadata.create_all. Safe to call on every startup.
    """
    try:
        engine = _get_engine()
        Base.metadata.create_all(bind=engine)
        logger.info("attribution_init_db", url=mask_database_url(get_database_url()))
    except Exception as e:
        logger.exception("attribution_init_db_failed", error=str(e))
        raise


def reset_engine_for_test() -> None:
    """
    Dispose and clear cached engine and session factory. For tests only; use with a new ATTRIBUTION_DB_PATH.
    """
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
