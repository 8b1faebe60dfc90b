"""Storage layer for masa-pos."""

from .sqlalchemy_adapter import SQLAlchemyStorage

__all__ = ["SQLAlchemyStorage"]
