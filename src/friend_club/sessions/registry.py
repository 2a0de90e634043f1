"""
Registry of authenticated repository contexts.

The external login flow registers one :class:`AuthenticatedContext` per
completed login under an opaque session id. Both the interactive posting
routes and the expiration reconciler read from the registry; entries are only
ever added or removed whole, never mutated. Nothing here is persisted, so a
restart logs everybody out.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Protocol, runtime_checkable

from friend_club.errors import SessionError

logger = logging.getLogger(__name__)


@runtime_checkable
class AuthenticatedContext(Protocol):
    """Capability to write to one identity's repository.

    Implementations raise :class:`~friend_club.errors.RepoError` for
    non-success responses and let transport errors propagate.
    """

    did: str

    async def create_record(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete_record(self, collection: str, rkey: str) -> None: ...

    async def upload_blob(self, data: bytes, mime_type: str) -> Dict[str, Any]: ...

    async def list_records(self, collection: str, limit: int = 100) -> list[Dict[str, Any]]: ...


class SessionRegistry:
    """In-memory map of session id -> :class:`AuthenticatedContext`."""

    def __init__(self) -> None:
        self._sessions: dict[str, AuthenticatedContext] = {}

    def add(self, session_id: str, context: AuthenticatedContext) -> None:
        self._sessions[session_id] = context
        logger.info("Registered session for %s", context.did)

    def get(self, session_id: str) -> AuthenticatedContext | None:
        return self._sessions.get(session_id)

    def require(self, session_id: str | None) -> AuthenticatedContext:
        """Return the context for ``session_id`` or raise :class:`SessionError`."""

        if not session_id:
            raise SessionError("No session ID provided")
        context = self._sessions.get(session_id)
        if context is None:
            raise SessionError("Invalid or expired session")
        return context

    def remove(self, session_id: str) -> AuthenticatedContext | None:
        context = self._sessions.pop(session_id, None)
        if context is not None:
            logger.info("Removed session for %s", context.did)
        return context

    def find_for(self, did: str) -> AuthenticatedContext | None:
        """Return any registered context bound to ``did``."""

        # Copy before iterating; logins may land while a caller awaits.
        for context in list(self._sessions.values()):
            if context.did == did:
                return context
        return None

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))


__all__ = ["AuthenticatedContext", "SessionRegistry"]
