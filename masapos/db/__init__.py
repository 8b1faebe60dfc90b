"""Database schema setup and transaction helpers for masa-pos."""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from masapos.db.models import Base

logger = logging.getLogger(__name__)


def init_db(engine: Engine, base: Optional[Any] = None) -> None:
    """
    Create missing tables from the declarative schema.

    Existing tables and data are preserved; schema migrations are out of scope.

    Args:
        engine: SQLAlchemy engine instance
        base: declarative base to use. If None, uses masapos.db.models.Base.

    Raises:
        RuntimeError: If the tables cannot be created
    """
    if base is None:
        base = Base

    logger.info("[init_db] Creating missing tables (preserving existing data)")
    try:
        base.metadata.create_all(engine)
    except Exception as e:
        logger.error("[init_db] Error creating tables: %s", e)
        raise RuntimeError(f"Failed to create database tables: {e}")


@contextmanager
def transaction(session: Session) -> Iterator[Session]:
    """
    Run a block of store writes as one unit: commit on success, rollback on error.

    Every lifecycle, upsert and catalogue operation wraps its read-modify-write
    sequence in this so a failure never leaves half-applied stock or totals.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


__all__ = ["Base", "init_db", "transaction"]
