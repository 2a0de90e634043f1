"""
Jetstream WebSocket client.

:class:`JetstreamClient` keeps a subscription to the public firehose open,
filtered to one or more record collections, and hands each matching commit
event to a synchronous sink in delivery order. Connection loss is never fatal:
the client sleeps for an exponentially growing delay (see
:class:`~friend_club.stream.backoff.Backoff`) and reconnects until
:meth:`JetstreamClient.stop` is awaited. The last seen ``time_us`` is sent back
as ``cursor`` on reconnect so short outages replay instead of dropping events;
the cursor is held in memory only.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Iterable
from urllib.parse import urlencode

import aiohttp

from friend_club.config import stream as stream_cfg

from .backoff import Backoff

logger = logging.getLogger(__name__)

Sink = Callable[[dict], Any]


def _normalize_collections(collection_filter: str | Iterable[str]) -> frozenset[str]:
    if isinstance(collection_filter, str):
        collections = frozenset({collection_filter})
    else:
        collections = frozenset(c for c in collection_filter if c)
    if not collections:
        raise ValueError("collection_filter must name at least one collection")
    return collections


class JetstreamClient:
    """Reconnecting, collection-filtered firehose subscription."""

    def __init__(
        self,
        url: str | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        backoff: Backoff | None = None,
        heartbeat: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = url or stream_cfg.JETSTREAM_URL
        self._session = session
        self._owns_session = session is None
        self._backoff = backoff or Backoff()
        self._heartbeat = heartbeat if heartbeat is not None else stream_cfg.HEARTBEAT
        self._sleep = sleep

        self._collections: frozenset[str] = frozenset()
        self._sink: Sink | None = None
        self._task: asyncio.Task | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._stopping = False
        self._cursor: int | None = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cursor(self) -> int | None:
        return self._cursor

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    def start(self, collection_filter: str | Iterable[str], sink: Sink) -> asyncio.Task:
        """Begin delivering matching commit events to ``sink``."""

        if self.running:
            raise RuntimeError("JetstreamClient is already running")

        self._collections = _normalize_collections(collection_filter)
        self._sink = sink
        self._stopping = False
        logger.info("Starting Jetstream consumer for %s", ", ".join(sorted(self._collections)))
        self._task = asyncio.create_task(self._run(), name="jetstream-client")
        return self._task

    async def stop(self) -> None:
        """Stop delivery, cancel any pending reconnect, and release the connection."""

        logger.info("Stopping Jetstream consumer")
        self._stopping = True

        task, self._task = self._task, None
        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()
        if task is not None:
            # Cancelling the run task also cancels a reconnect sleep in progress.
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Jetstream consumer ended with an error")

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------ #
    # Connection loop
    # ------------------------------------------------------------------ #

    def subscribe_url(self) -> str:
        params: list[tuple[str, str]] = [
            ("wantedCollections", c) for c in sorted(self._collections)
        ]
        if self._cursor is not None:
            params.append(("cursor", str(self._cursor)))
        sep = "&" if "?" in self._url else "?"
        return f"{self._url}{sep}{urlencode(params)}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await self._connect_once()
            except Exception:
                logger.exception("Unexpected Jetstream failure; reconnecting")
            if self._stopping:
                break
            delay = self._backoff.next_delay()
            logger.info(
                "Reconnecting in %.1fs (attempt %d)", delay, self._backoff.attempts
            )
            await self._sleep(delay)

    async def _connect_once(self) -> None:
        url = self.subscribe_url()
        logger.info("Connecting to %s", url)
        try:
            async with self._get_session().ws_connect(url, heartbeat=self._heartbeat) as ws:
                self._ws = ws
                self._backoff.reset()
                logger.info("Connected")
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self._dispatch(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.warning("WebSocket error: %s", ws.exception())
                        break
                logger.info("Disconnected (code: %s)", ws.close_code)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            logger.warning("Jetstream connection failed: %s", exc)
        finally:
            self._ws = None

    def _dispatch(self, data: str | bytes) -> None:
        try:
            event = json.loads(data)
        except ValueError:
            logger.debug("Dropping malformed Jetstream frame: %.100r", data)
            return
        if not isinstance(event, dict):
            return

        time_us = event.get("time_us")
        if isinstance(time_us, int) and not isinstance(time_us, bool):
            self._cursor = time_us

        if event.get("kind") != "commit":
            return
        commit = event.get("commit")
        if not isinstance(commit, dict) or commit.get("collection") not in self._collections:
            return

        if self._sink is None:
            return
        try:
            self._sink(event)
        except Exception:
            # A failing consumer must not tear down the subscription.
            logger.exception("Stream sink failed for event from %s", event.get("did"))


__all__ = ["JetstreamClient", "Sink"]
