"""
Handle frames sent by connected viewers.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from friend_club.fanout import BroadcastHub, Viewer

logger = logging.getLogger(__name__)


async def handle(hub: BroadcastHub, viewer: Viewer, raw: str | bytes | dict) -> None:
    """Parse a viewer frame and route chat submissions through the hub."""

    data: Any
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring non-JSON viewer frame")
            return

    if not isinstance(data, dict) or data.get("type") != "chat":
        return

    message = await hub.submit(viewer, data)
    if message is not None:
        logger.info("Viewer message %s from %s", message.id, message.author_handle or message.author_id)
