"""Async database engine, sessions and declarative base."""

from collabxp.core.database.base import Base, IdMixin, TimestampMixin
from collabxp.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
