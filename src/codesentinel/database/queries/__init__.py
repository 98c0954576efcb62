"""Query functions for the CodeSentinel database layer."""

from codesentinel.database.queries.session import (
    delete_stored_session,
    get_stored_session,
    upsert_stored_session,
)

__all__ = [
    "get_stored_session",
    "upsert_stored_session",
    "delete_stored_session",
]
