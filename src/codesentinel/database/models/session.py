"""Stored review session model for CodeSentinel.

The whole session aggregate (operator, target and review state) is kept as
one opaque JSON document under a fixed key, so a single row holds the
current session.
"""

from __future__ import annotations

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from codesentinel.database.models.base import Base, TimestampMixin


class StoredSession(TimestampMixin, Base):
    """Persisted review session document.

    Attributes:
        session_key: Fixed key the session is stored under.
        payload: camelCase JSON of the session aggregate.
    """

    __tablename__ = "review_sessions"

    session_key: Mapped[str] = mapped_column(Text, primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<StoredSession(session_key={self.session_key!r}, bytes={len(self.payload)})>"
