"""SQLAlchemy declarative base and common column mixins for CodeSentinel.

Example:
    >>> class MyModel(TimestampMixin, Base):
    ...     __tablename__ = "my_table"
    ...     name: Mapped[str] = mapped_column(Text, primary_key=True)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base for all CodeSentinel models."""

    pass


class TimestampMixin:
    """Mixin providing created_at and updated_at columns.

    List it before Base in the class hierarchy so the columns are included
    in the model's table definition.

    Attributes:
        created_at: Timestamp set by the database on row creation.
        updated_at: Timestamp set on row creation and refreshed on each update.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
