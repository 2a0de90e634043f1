"""
Delete expired messages from their owners' repositories.

The cache only hides expired messages; the records themselves live on each
writer's PDS until somebody with that writer's credentials deletes them.
:class:`ExpirationReconciler` does this whenever a session for the author is
registered:

* :meth:`~ExpirationReconciler.run_cycle` walks ``cache.expired()``, deletes
  each record through any matching session, and drops it from the cache (and
  from viewers) only after the remote delete succeeded. Entries without a
  session, or whose delete failed, stay put and are retried next cycle.
* :meth:`~ExpirationReconciler.sweep_user` runs right after a login and clears
  that user's own expired backlog straight from their repository listing.
"""

from __future__ import annotations

import logging
from typing import Callable

from friend_club import maintenance
from friend_club.cache import MessageCache, now_ms
from friend_club.cache.model import parse_timestamp_ms
from friend_club.config import reconcile as reconcile_cfg
from friend_club.config import stream as stream_cfg
from friend_club.fanout import BroadcastHub
from friend_club.sessions import AuthenticatedContext, SessionRegistry

logger = logging.getLogger(__name__)


def rkey_from_uri(uri: str) -> str:
    """Return the record key (last path segment) of an ``at://`` URI."""

    return uri.rstrip("/").rsplit("/", 1)[-1]


class ExpirationReconciler:
    """Periodic job that reconciles expired cache entries with remote repos."""

    def __init__(
        self,
        cache: MessageCache,
        registry: SessionRegistry,
        hub: BroadcastHub | None = None,
        *,
        collection: str | None = None,
        interval: float | None = None,
        sweep_limit: int | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._cache = cache
        self._registry = registry
        self._hub = hub
        self.collection = collection or stream_cfg.COLLECTION
        self.interval = interval if interval is not None else reconcile_cfg.INTERVAL
        self.sweep_limit = sweep_limit or reconcile_cfg.SWEEP_LIMIT
        self._clock = clock
        self._job: maintenance.PeriodicJob | None = None

    @property
    def running(self) -> bool:
        return self._job is not None and not self._job.done()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Run one cycle immediately, then schedule periodic cycles."""

        if self.running:
            return
        logger.info("Starting expiration cleanup job (every %ds)", self.interval)
        try:
            await self.run_cycle()
        except Exception:
            logger.exception("Initial expiration cleanup failed")
        self._job = await maintenance.startup(self.run_cycle, self.interval)

    async def stop(self) -> None:
        """Cancel the schedule; a cycle already in flight completes first."""

        if self._job is None:
            return
        await maintenance.shutdown(self._job)
        self._job = None
        logger.info("Stopped expiration cleanup job")

    # ------------------------------------------------------------------ #
    # Cycles
    # ------------------------------------------------------------------ #

    async def run_cycle(self) -> int:
        """Reconcile every expired cache entry once; return how many were deleted."""

        expired = self._cache.expired()
        if not expired:
            return 0

        logger.info("Found %d expired messages", len(expired))
        deleted = 0
        for message in expired:
            context = self._registry.find_for(message.author_id)
            if context is None:
                logger.info(
                    "No active session for %s, skipping %s", message.author_id, message.id
                )
                continue

            try:
                await context.delete_record(self.collection, message.id)
            except Exception as e:
                logger.error("Failed to delete %s: %s", message.id, e)
                continue

            logger.info("Deleted expired message %s from %s", message.id, message.author_id)
            await self._forget(message.id)
            deleted += 1
        return deleted

    async def sweep_user(self, context: AuthenticatedContext) -> int:
        """Delete up to ``sweep_limit`` of one user's own expired records.

        Best effort: failures are logged and never raised.
        """

        try:
            records = await context.list_records(self.collection, limit=self.sweep_limit)
        except Exception as e:
            logger.error("Error listing records for %s: %s", context.did, e)
            return 0

        now = self._clock()
        deleted = 0
        for record in records:
            if not isinstance(record, dict):
                continue
            value = record.get("value")
            uri = record.get("uri")
            if not isinstance(value, dict) or not isinstance(uri, str):
                continue
            expires_at = parse_timestamp_ms(value.get("expiresAt"))
            if expires_at is None or expires_at > now:
                continue

            rkey = rkey_from_uri(uri)
            try:
                await context.delete_record(self.collection, rkey)
            except Exception as e:
                logger.error("Failed to delete user message %s: %s", rkey, e)
                continue
            logger.info("Deleted user's expired message %s", rkey)
            await self._forget(rkey)
            deleted += 1
        return deleted

    async def _forget(self, message_id: str) -> None:
        removed = self._cache.delete(message_id)
        if removed and self._hub is not None:
            await self._hub.broadcast_delete(message_id)


__all__ = ["ExpirationReconciler", "rkey_from_uri"]
