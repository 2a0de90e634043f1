"""
Map raw Jetstream commit events onto cache actions.

:meth:`EventMapper.map` turns one event into a :class:`MapResult`:

* ``accept`` carries a fully built :class:`ChatMessage` to upsert,
* ``reject`` carries the record key of a deleted record,
* ``ignore`` covers everything else (foreign collections, missing or expired
  records, malformed payloads).

Handle and media resolution are injected coroutines. Their failures degrade
the message (no handle, no media) instead of dropping it, and mapping itself
never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional

from friend_club.cache.model import ChatMessage, now_ms, parse_timestamp_ms
from friend_club.config import stream as stream_cfg

logger = logging.getLogger(__name__)

Action = Literal["accept", "reject", "ignore"]
HandleResolver = Callable[[str], Awaitable[Optional[str]]]
BlobResolver = Callable[[str, str], Awaitable[Optional[str]]]

MEDIA_FIELDS = ("video", "image")


@dataclass(frozen=True, slots=True)
class MapResult:
    """Tagged outcome of mapping one event; ``message_id`` names the target."""

    action: Action
    message_id: str | None = None
    message: ChatMessage | None = None

    @classmethod
    def accept(cls, message: ChatMessage) -> "MapResult":
        return cls("accept", message.id, message)

    @classmethod
    def reject(cls, message_id: str) -> "MapResult":
        return cls("reject", message_id)

    @classmethod
    def ignore(cls) -> "MapResult":
        return _IGNORE


_IGNORE = MapResult("ignore")


def blob_cid(blob: Any) -> str | None:
    """Extract the CID from a blob reference (current or legacy form)."""

    if not isinstance(blob, dict):
        return None
    ref = blob.get("ref")
    if isinstance(ref, dict):
        link = ref.get("$link")
        if isinstance(link, str) and link:
            return link
    if isinstance(ref, str) and ref:
        return ref
    legacy = blob.get("cid")
    if isinstance(legacy, str) and legacy:
        return legacy
    return None


def event_target(raw: Any) -> tuple[str, str] | None:
    """Return ``(did, rkey)`` for a commit event, or ``None`` if malformed."""

    if not isinstance(raw, dict):
        return None
    commit = raw.get("commit")
    did = raw.get("did")
    if not isinstance(commit, dict) or not isinstance(did, str) or not did:
        return None
    rkey = commit.get("rkey")
    if not isinstance(rkey, str) or not rkey:
        return None
    return did, rkey


class EventMapper:
    """Convert firehose commits for one collection into cache actions."""

    def __init__(
        self,
        *,
        collection: str | None = None,
        resolve_handle: HandleResolver | None = None,
        resolve_blob_url: BlobResolver | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.collection = collection or stream_cfg.COLLECTION
        self._resolve_handle = resolve_handle
        self._resolve_blob_url = resolve_blob_url
        self._clock = clock

    async def map(self, raw: Any) -> MapResult:
        try:
            return await self._map(raw)
        except Exception:
            logger.exception("Unexpected error mapping event; ignoring")
            return MapResult.ignore()

    async def _map(self, raw: Any) -> MapResult:
        target = event_target(raw)
        if target is None:
            return MapResult.ignore()
        did, rkey = target
        commit = raw["commit"]

        if commit.get("collection") != self.collection:
            return MapResult.ignore()

        operation = commit.get("operation")
        if operation == "delete":
            logger.info("Deleted message: at://%s/%s/%s", did, self.collection, rkey)
            return MapResult.reject(rkey)
        if operation not in ("create", "update"):
            return MapResult.ignore()

        record = commit.get("record")
        if not isinstance(record, dict):
            return MapResult.ignore()

        now = self._clock()
        expires_at = parse_timestamp_ms(record.get("expiresAt"))
        if record.get("expiresAt") is not None and expires_at is None:
            logger.debug("Dropping record %s with unparsable expiresAt", rkey)
            return MapResult.ignore()
        if expires_at is not None and expires_at < now:
            logger.info("Skipping expired message: at://%s/%s/%s", did, self.collection, rkey)
            return MapResult.ignore()

        text = record.get("text")
        if text is None:
            text = ""
        elif not isinstance(text, str):
            return MapResult.ignore()

        created_at = parse_timestamp_ms(record.get("createdAt"))
        if created_at is None:
            time_us = raw.get("time_us")
            created_at = time_us // 1000 if isinstance(time_us, int) else now

        cross_post = record.get("blueskyPostUri")
        message = ChatMessage(
            id=rkey,
            text=text,
            author_id=did,
            created_at=created_at,
            media_url=await self._media_url(did, record),
            author_handle=await self._handle(did),
            cross_post_ref=cross_post if isinstance(cross_post, str) and cross_post else None,
            expires_at=expires_at,
        )
        logger.info(
            "New message from %s: %s", message.author_handle or did, text[:50]
        )
        return MapResult.accept(message)

    async def _handle(self, did: str) -> str | None:
        if self._resolve_handle is None:
            return None
        try:
            return await self._resolve_handle(did)
        except Exception as e:
            logger.warning("Handle resolution failed for %s: %s", did, e)
            return None

    async def _media_url(self, did: str, record: dict) -> str | None:
        cid = next(
            (c for c in (blob_cid(record.get(f)) for f in MEDIA_FIELDS) if c), None
        )
        if cid is None or self._resolve_blob_url is None:
            return None
        try:
            return await self._resolve_blob_url(did, cid)
        except Exception as e:
            logger.warning("Media resolution failed for %s/%s: %s", did, cid, e)
            return None


__all__ = ["EventMapper", "MapResult", "blob_cid", "event_target"]
