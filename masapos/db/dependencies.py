"""FastAPI dependencies for database session and notifier injection."""

from typing import Iterator

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from masapos.broadcast import Notifier
from masapos.storage import SQLAlchemyStorage


def get_storage(request: Request) -> SQLAlchemyStorage:
    """Storage configured on the app at startup."""
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise HTTPException(status_code=503, detail="Storage not initialized")
    return storage


def get_db_session(request: Request) -> Iterator[Session]:
    """
    FastAPI dependency yielding one SQLAlchemy session per request.

    Operations commit or roll back themselves; the session is always closed.
    """
    session = get_storage(request)._get_session()
    try:
        yield session
    finally:
        session.close()


def get_notifier(request: Request) -> Notifier:
    """Broadcast notifier handed to every state-changing operation."""
    return request.app.state.notifier
