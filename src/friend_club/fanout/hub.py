"""
Live fan-out of cache changes to connected viewers.

A viewer is anything with an ``async send_json(data)`` coroutine, normally an
:class:`aiohttp.web.WebSocketResponse`. Delivery is best-effort multicast: a
viewer whose send fails (or that reports itself closed) is dropped from the
group and never retried. Server -> viewer frames::

    {"type": "connected", "messages": [ChatMessage-as-dict, ...]}
    {"type": "new_message", "message": ChatMessage-as-dict}
    {"type": "delete_message", "messageId": str}

Viewers may also submit ``{"type": "chat", "text", "gif"?, "userId",
"userHandle"?}``; see :meth:`BroadcastHub.submit`.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Iterable, Protocol

from friend_club.cache import ChatMessage, MessageCache, now_ms
from friend_club.cache.serialization import serialize_messages
from friend_club.config import cache as cache_cfg

logger = logging.getLogger(__name__)


class Viewer(Protocol):
    async def send_json(self, data: Any) -> None: ...


class BroadcastHub:
    """Tracks joined viewers and pushes cache changes to them."""

    def __init__(
        self,
        cache: MessageCache,
        *,
        snapshot_size: int | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._cache = cache
        self._snapshot_size = snapshot_size if snapshot_size is not None else cache_cfg.RECENT_LIMIT
        self._clock = clock
        self._viewers: set[Viewer] = set()

    def __len__(self) -> int:
        return len(self._viewers)

    def __contains__(self, viewer: object) -> bool:
        return viewer in self._viewers

    # ------------------------------------------------------------------ #
    # Membership
    # ------------------------------------------------------------------ #

    async def join(self, viewer: Viewer) -> bool:
        """Subscribe ``viewer`` and send it the current snapshot.

        The viewer joins the group before the snapshot is taken, so a message
        broadcast while the snapshot is in flight still reaches it. Returns
        ``False`` when the snapshot could not be delivered; the viewer is then
        removed again.
        """

        self._viewers.add(viewer)
        snapshot = serialize_messages(self._cache.recent(self._snapshot_size))
        if not await self._send(viewer, {"type": "connected", "messages": snapshot}):
            self._viewers.discard(viewer)
            return False
        logger.info("Viewer joined (%d connected)", len(self._viewers))
        return True

    def leave(self, viewer: Viewer) -> None:
        if viewer in self._viewers:
            self._viewers.discard(viewer)
            logger.info("Viewer left (%d connected)", len(self._viewers))

    async def close_all(self) -> None:
        """Close every viewer connection that supports it and clear the group."""

        viewers, self._viewers = list(self._viewers), set()
        for viewer in viewers:
            close = getattr(viewer, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception:
                logger.debug("Error closing viewer during shutdown", exc_info=True)

    # ------------------------------------------------------------------ #
    # Broadcast
    # ------------------------------------------------------------------ #

    async def broadcast_create(self, message: ChatMessage) -> None:
        await self._broadcast({"type": "new_message", "message": message.to_dict()})

    async def broadcast_delete(self, message_id: str) -> None:
        await self._broadcast({"type": "delete_message", "messageId": message_id})

    async def _broadcast(self, frame: dict, exclude: Iterable[Viewer] = ()) -> None:
        skip = set(exclude)
        targets = [v for v in self._viewers if v not in skip]
        if not targets:
            return
        results = await asyncio.gather(*(self._send(v, frame) for v in targets))
        for viewer, ok in zip(targets, results):
            if not ok:
                self._viewers.discard(viewer)
        dropped = results.count(False)
        if dropped:
            logger.info("Dropped %d disconnected viewer(s)", dropped)

    async def _send(self, viewer: Viewer, frame: dict) -> bool:
        if getattr(viewer, "closed", False):
            return False
        try:
            await viewer.send_json(frame)
        except Exception as e:
            logger.debug("Send to viewer failed: %s", e)
            return False
        return True

    # ------------------------------------------------------------------ #
    # Self-submission
    # ------------------------------------------------------------------ #

    async def submit(self, viewer: Viewer, payload: Any) -> ChatMessage | None:
        """Persist a viewer's own chat frame, echo it back, and broadcast it.

        Non-chat frames and frames without text are ignored.
        """

        if not isinstance(payload, dict) or payload.get("type") != "chat":
            return None
        text = payload.get("text")
        if not isinstance(text, str):
            return None

        gif = payload.get("gif")
        handle = payload.get("userHandle")
        message = ChatMessage(
            id=str(uuid.uuid4()),
            text=text,
            author_id=str(payload.get("userId") or "anonymous"),
            created_at=self._clock(),
            media_url=gif if isinstance(gif, str) and gif else None,
            author_handle=handle if isinstance(handle, str) and handle else None,
        )

        self._cache.upsert(message)

        frame = {"type": "new_message", "message": message.to_dict()}
        if await self._send(viewer, frame):
            # The submitter is subscribed by the act of posting.
            self._viewers.add(viewer)
        else:
            self._viewers.discard(viewer)
        await self._broadcast(frame, exclude=[viewer])
        return message


__all__ = ["BroadcastHub", "Viewer"]
