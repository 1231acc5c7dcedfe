#!/usr/bin/env python
"""
Database session management for the HideSync scheduler.

Usage:
    from hidesync_scheduler.db.session import get_db

    # In FastAPI dependency
    def some_endpoint(db: Session = Depends(get_db)):
        # Use db for database operations
        ...
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from hidesync_scheduler.core.config import settings
from hidesync_scheduler.db.models.base import Base

# Configure module logger
logger = logging.getLogger(__name__)


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create an engine for the given URL, with SQLite tuned for multi-threaded use.

    Args:
        database_url: Database URL, defaults to settings.DATABASE_URL

    Returns:
        SQLAlchemy engine
    """
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection keeps the in-memory database alive.
            kwargs["poolclass"] = StaticPool
        logger.info(f"Using SQLite database at {url}")
        return create_engine(url, **kwargs)

    logger.info("Using server database")
    return create_engine(url, pool_pre_ping=True)


engine = create_db_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all scheduler tables if they do not exist."""
    # Import models so they register with the metadata.
    import hidesync_scheduler.db.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables initialized")


# -----------------------------------------------------------------------------
# FastAPI Dependency
# -----------------------------------------------------------------------------


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session with proper resource management.

    Returns:
        SQLAlchemy Session for database operations
    """
    thread_id = threading.get_ident()
    logger.debug(f"Creating DB session for thread {thread_id}")

    db = SessionLocal()

    try:
        yield db
    except Exception as e:
        logger.error(f"Error in get_db for thread {thread_id}: {e}")
        raise
    finally:
        db.close()
        logger.debug(f"Closed DB session for thread {thread_id}")


# -----------------------------------------------------------------------------
# Transaction Support
# -----------------------------------------------------------------------------


@contextmanager
def transaction(session=None):
    """
    Context manager for database transactions.

    Args:
        session: Optional session to use (if None, creates a new one)

    Yields:
        Database session for use within the transaction
    """
    close_session = False

    if session is None:
        session = SessionLocal()
        close_session = True

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        if close_session and session:
            session.close()
