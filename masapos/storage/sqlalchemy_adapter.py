"""
SQLAlchemy storage: owns the engine and the session factory.

The core never talks to the engine directly; routers get a session per request
through ``masapos.db.dependencies.get_db_session``.
"""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from masapos.db import init_db

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLAlchemyStorage:
    """SQLAlchemy-backed persistent store for regions, tables, products and sessions."""

    def __init__(self, database_url: str = "sqlite:///masa.db", create_schema: bool = True):
        """
        Initialize the engine and (optionally) the schema.

        Args:
            database_url: SQLAlchemy database URL
            create_schema: create missing tables on startup
        """
        self.database_url = database_url
        is_sqlite = database_url.startswith("sqlite")
        is_memory = is_sqlite and (":memory:" in database_url or database_url.rstrip("/") == "sqlite:")

        engine_kwargs = {
            "echo": False,
            "future": True,
            "pool_pre_ping": True,
        }
        if is_sqlite:
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        if is_memory:
            # A single shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool

        self.engine = create_engine(self.database_url, **engine_kwargs)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        if create_schema:
            init_db(self.engine)
            logger.info("[SQLAlchemyStorage] Database initialized at %s", self.database_url)

    def _get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        self.engine.dispose()
