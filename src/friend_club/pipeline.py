"""
Firehose -> mapper -> cache/fan-out pipeline.

The stream client calls :meth:`SyncPipeline.submit` synchronously for every
matching event. Each event is mapped in its own task because handle and media
lookups are network calls; a slow lookup must not stall the events behind it.
Tasks therefore complete out of order. That is safe because every task carries
its target record key and the cache merge is idempotent per key: whichever
completion lands last wins.
"""

from __future__ import annotations

import asyncio
import logging

from friend_club.cache import MessageCache
from friend_club.event_hooks import commit_hook
from friend_club.fanout import BroadcastHub
from friend_club.stream.mapper import EventMapper, event_target

logger = logging.getLogger(__name__)


class SyncPipeline:
    """Fan stream events out to per-event mapping tasks."""

    def __init__(
        self,
        mapper: EventMapper,
        cache: MessageCache,
        hub: BroadcastHub | None = None,
    ) -> None:
        self._mapper = mapper
        self._cache = cache
        self._hub = hub
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, event: dict) -> asyncio.Task:
        """Schedule ``event`` for mapping; usable directly as a stream sink."""

        target = event_target(event)
        name = f"map:{target[1]}" if target else "map:?"
        task = asyncio.create_task(self.process(event), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def process(self, event: dict) -> None:
        result = await self._mapper.map(event)
        if result.action == "ignore":
            return
        try:
            await commit_hook.handle(result, self._cache, self._hub)
        except Exception:
            logger.exception("Failed to apply %s for %s", result.action, result.message_id)

    async def drain(self) -> None:
        """Wait for all in-flight mapping tasks."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["SyncPipeline"]
