"""
Hooks for the external login flow.
"""

from __future__ import annotations

import logging

from friend_club.reconcile import ExpirationReconciler
from friend_club.sessions import AuthenticatedContext, SessionRegistry

logger = logging.getLogger(__name__)


async def handle(
    registry: SessionRegistry,
    reconciler: ExpirationReconciler,
    session_id: str,
    context: AuthenticatedContext,
) -> int:
    """Register a freshly completed login and sweep the user's expired records."""

    registry.add(session_id, context)
    deleted = await reconciler.sweep_user(context)
    if deleted:
        logger.info("Login sweep removed %d expired record(s) for %s", deleted, context.did)
    return deleted


def handle_logout(registry: SessionRegistry, session_id: str) -> None:
    if registry.remove(session_id) is None:
        logger.debug("Logout for unknown session %s", session_id)
