"""Stored session query functions for CodeSentinel.

Provides async functions for reading, writing and deleting the persisted
session document. Callers pass an AsyncSession with no transaction open.
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from codesentinel.database.models.session import StoredSession

logger = structlog.get_logger(__name__)


async def get_stored_session(
    session: AsyncSession,
    session_key: str,
) -> StoredSession | None:
    """Retrieve the stored session document for a key.

    Args:
        session: Active async database session.
        session_key: Key the document is stored under.

    Returns:
        The StoredSession row if present, None otherwise.
    """
    stmt = select(StoredSession).where(StoredSession.session_key == session_key)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def upsert_stored_session(
    session: AsyncSession,
    session_key: str,
    payload: str,
) -> StoredSession:
    """Insert or replace the stored session document for a key.

    Args:
        session: Active async database session.
        session_key: Key the document is stored under.
        payload: Serialized session aggregate.

    Returns:
        The written StoredSession row.
    """
    async with session.begin():
        stored = await session.get(StoredSession, session_key)
        if stored is None:
            stored = StoredSession(session_key=session_key, payload=payload)
            session.add(stored)
        else:
            stored.payload = payload
        await session.flush()

    logger.debug("stored_session_written", session_key=session_key, bytes=len(payload))
    return stored


async def delete_stored_session(
    session: AsyncSession,
    session_key: str,
) -> bool:
    """Delete the stored session document for a key.

    Args:
        session: Active async database session.
        session_key: Key the document is stored under.

    Returns:
        True if a row was deleted, False if none existed.
    """
    async with session.begin():
        result = await session.execute(
            delete(StoredSession).where(StoredSession.session_key == session_key)
        )

    deleted = result.rowcount > 0
    logger.info("stored_session_deleted", session_key=session_key, deleted=deleted)
    return deleted
