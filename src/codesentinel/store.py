"""Durable session store for CodeSentinel.

Serializes the whole review session (operator, target and review state) as
one camelCase JSON document under a fixed key. Restoration never raises for
bad data: a missing, undecodable or schema-invalid document yields a fresh
session.
"""

from __future__ import annotations

import json

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from codesentinel.database.queries.session import (
    delete_stored_session,
    get_stored_session,
    upsert_stored_session,
)
from codesentinel.review.models import Session

logger = structlog.get_logger(__name__)


def serialize_session(session: Session) -> str:
    """Encode ``session`` in the persisted wire format."""
    return session.model_dump_json(by_alias=True)


def deserialize_session(payload: str) -> Session:
    """Decode a persisted document.

    Raises:
        json.JSONDecodeError: If the payload is not JSON.
        ValidationError: If the JSON does not describe a session.
    """
    return Session.model_validate(json.loads(payload))


class SessionStore:
    """Loads, saves and clears the session under one fixed key.

    Attributes:
        session_key: Key the session document is stored under.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        session_key: str,
    ):
        self._session_factory = session_factory
        self.session_key = session_key
        self._logger = logger.bind(component="SessionStore", session_key=session_key)

    async def load(self) -> Session:
        """Restore the persisted session, or a fresh one when none is usable."""
        async with self._session_factory() as db:
            stored = await get_stored_session(db, self.session_key)

        if stored is None:
            self._logger.debug("session_not_found")
            return Session()

        try:
            session = deserialize_session(stored.payload)
        except (json.JSONDecodeError, ValidationError) as e:
            self._logger.warning("session_restore_failed", error=str(e))
            return Session()

        self._logger.info(
            "session_restored",
            repo_name=session.state.repo_name,
            phase=session.state.phase.value,
        )
        return session

    async def save(self, session: Session) -> None:
        """Persist ``session``, replacing any previous document."""
        async with self._session_factory() as db:
            await upsert_stored_session(db, self.session_key, serialize_session(session))

    async def clear(self) -> None:
        """Remove the persisted session."""
        async with self._session_factory() as db:
            await delete_stored_session(db, self.session_key)
