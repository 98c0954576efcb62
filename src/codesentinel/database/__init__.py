"""Database layer for CodeSentinel.

This module handles database connections and session management, and
provides the SQLAlchemy async engine configuration for session persistence.

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    init_schema: Create missing tables.
    Base: SQLAlchemy declarative base for all models.
"""

from codesentinel.database.connection import get_engine, get_session_factory, init_schema
from codesentinel.database.models import Base, StoredSession, TimestampMixin

__all__ = [
    "get_engine",
    "get_session_factory",
    "init_schema",
    "Base",
    "TimestampMixin",
    "StoredSession",
]
