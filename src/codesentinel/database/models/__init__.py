"""SQLAlchemy ORM models for CodeSentinel.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from codesentinel.database.models.base import Base, TimestampMixin
from codesentinel.database.models.session import StoredSession

__all__ = [
    "Base",
    "TimestampMixin",
    "StoredSession",
]
