"""Process-level wiring of the cache synchronization components."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

import aiohttp

from friend_club import posting
from friend_club.cache import MessageCache, now_ms, snapshot
from friend_club.config import cache as cache_cfg
from friend_club.config import stream as stream_cfg
from friend_club.event_hooks import commit_hook, login_hook
from friend_club.fanout import BroadcastHub
from friend_club.identity import IdentityResolver
from friend_club.pipeline import SyncPipeline
from friend_club.reconcile import ExpirationReconciler
from friend_club.sessions import AuthenticatedContext, SessionRegistry
from friend_club.stream import EventMapper, JetstreamClient, MapResult
from friend_club.stream.mapper import blob_cid

logger = logging.getLogger(__name__)


class FriendClub:
    """Owns the cache, registry, hub, stream and reconciler for one process.

    Everything is constructed here and torn down by :meth:`stop`; nothing is
    held in module globals.
    """

    def __init__(
        self,
        *,
        collection: str | None = None,
        cache: MessageCache | None = None,
        resolver: IdentityResolver | None = None,
        stream: JetstreamClient | None = None,
        http_session: aiohttp.ClientSession | None = None,
        snapshot_path: str | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.collection = collection or stream_cfg.COLLECTION
        self.clock = clock
        self.cache = cache or MessageCache(clock=clock)
        self.registry = SessionRegistry()
        self.hub = BroadcastHub(self.cache, clock=clock)
        self.resolver = resolver or IdentityResolver(session=http_session)
        self.mapper = EventMapper(
            collection=self.collection,
            resolve_handle=self.resolver.resolve_handle,
            resolve_blob_url=self.resolver.blob_url,
            clock=clock,
        )
        self.pipeline = SyncPipeline(self.mapper, self.cache, self.hub)
        self.stream = stream or JetstreamClient(session=http_session)
        self.reconciler = ExpirationReconciler(
            self.cache, self.registry, self.hub, collection=self.collection, clock=clock
        )
        self.snapshot_path = cache_cfg.SNAPSHOT_PATH if snapshot_path is None else snapshot_path

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        if self.snapshot_path:
            restored = snapshot.load(self.snapshot_path)
            self.cache.load(restored)
            logger.info("Restored %d cached message(s) from %s", self.cache.count(), self.snapshot_path)

        self.stream.start(self.collection, self.pipeline.submit)
        await self.reconciler.start()

    async def stop(self) -> None:
        logger.info("Shutting down...")
        await self.stream.stop()
        await self.reconciler.stop()
        await self.pipeline.drain()
        await self.hub.close_all()
        self.registry.clear()

        if self.snapshot_path:
            try:
                snapshot.save(self.snapshot_path, self.cache.all())
            except OSError:
                logger.exception("Failed to write cache snapshot %s", self.snapshot_path)
        await self.resolver.close()

    # ------------------------------------------------------------------ #
    # Login flow hooks
    # ------------------------------------------------------------------ #

    async def complete_login(self, session_id: str, context: AuthenticatedContext) -> int:
        """Register ``context`` and sweep the user's own expired records."""

        return await login_hook.handle(self.registry, self.reconciler, session_id, context)

    def logout(self, session_id: str) -> None:
        login_hook.handle_logout(self.registry, session_id)

    # ------------------------------------------------------------------ #
    # Interactive posting
    # ------------------------------------------------------------------ #

    async def post(
        self,
        session_id: str | None,
        text: str,
        *,
        media_data_url: str | None = None,
        cross_post: bool = False,
        expires_in: str | None = None,
    ) -> posting.PostResult:
        """Post for ``session_id`` and mirror the result into the cache."""

        context = self.registry.require(session_id)
        media = posting.decode_data_url(media_data_url) if media_data_url else None
        result = await posting.post_message(
            context,
            text,
            media=media,
            cross_post=cross_post,
            expires_in=expires_in,
            collection=self.collection,
            clock=self.clock,
        )

        cid = blob_cid(result.blob)
        media_url = await self.resolver.blob_url(context.did, cid) if cid else None
        handle = await self.resolver.resolve_handle(context.did)
        message = result.to_message(context.did, handle, media_url)
        # The firehose echo of this record later replaces the entry in place.
        await commit_hook.handle(MapResult.accept(message), self.cache, self.hub)
        return result

    async def delete(self, session_id: str | None, rkey: str) -> None:
        context = self.registry.require(session_id)
        cached = self.cache.get(rkey)
        await posting.delete_message(
            context,
            rkey,
            cross_post_ref=cached.cross_post_ref if cached else None,
            collection=self.collection,
        )
        await commit_hook.handle(MapResult.reject(rkey), self.cache, self.hub)

    async def my_posts(self, session_id: str | None) -> list[Dict[str, Any]]:
        """Return the caller's own chat records straight from their repository."""

        context = self.registry.require(session_id)
        records = await context.list_records(self.collection, limit=self.reconciler.sweep_limit)
        posts = []
        for record in records:
            if not isinstance(record, dict):
                continue
            value = record.get("value")
            uri = record.get("uri")
            if not isinstance(value, dict) or not isinstance(uri, str):
                continue
            posts.append(
                {
                    "uri": uri,
                    "rkey": uri.rsplit("/", 1)[-1],
                    "text": value.get("text"),
                    "video": value.get("video"),
                    "blueskyPostUri": value.get("blueskyPostUri"),
                    "expiresAt": value.get("expiresAt"),
                    "createdAt": value.get("createdAt"),
                }
            )
        return posts


__all__ = ["FriendClub"]
