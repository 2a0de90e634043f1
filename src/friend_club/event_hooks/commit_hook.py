"""
Apply mapped firehose commits to the cache and to live viewers.
"""

from __future__ import annotations

import logging

from friend_club.cache import MessageCache
from friend_club.fanout import BroadcastHub
from friend_club.stream.mapper import MapResult

logger = logging.getLogger(__name__)


async def handle(result: MapResult, cache: MessageCache, hub: BroadcastHub | None) -> None:
    """Upsert accepted messages, drop rejected ids, ignore the rest."""

    if result.action == "accept" and result.message is not None:
        evicted = cache.upsert(result.message)
        # A message older than everything cached is evicted by its own insert.
        if result.message.id in evicted:
            logger.debug("Message %s was older than the cache window", result.message.id)
            return
        if hub is not None:
            await hub.broadcast_create(result.message)
    elif result.action == "reject" and result.message_id is not None:
        cache.delete(result.message_id)
        if hub is not None:
            await hub.broadcast_delete(result.message_id)
