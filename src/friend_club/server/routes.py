"""HTTP and WebSocket handlers for viewers and the posting UI."""

from __future__ import annotations

import asyncio
import functools
import json
import logging

import aiohttp
from aiohttp import web

from friend_club.app import FriendClub
from friend_club.cache.serialization import build_export, serialize_messages
from friend_club.config import cache as cache_cfg
from friend_club.config import core
from friend_club.errors import RepoError, SessionError
from friend_club.event_hooks import viewer_hook
from friend_club.posting import bluesky_post_url

logger = logging.getLogger(__name__)

CLUB_KEY = web.AppKey("friend_club", FriendClub)

routes = web.RouteTableDef()


def _club(request: web.Request) -> FriendClub:
    return request.app[CLUB_KEY]


def _status_for(exc: Exception) -> int:
    if isinstance(exc, SessionError):
        return 401
    if isinstance(exc, ValueError):
        return 400
    return 502


def _failure(exc: Exception) -> web.Response:
    return web.json_response({"success": False, "error": str(exc)}, status=_status_for(exc))


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


@routes.get("/ws")
async def viewer_socket(request: web.Request) -> web.WebSocketResponse:
    club = _club(request)
    ws = web.WebSocketResponse(max_msg_size=core.MAX_WS_MESSAGE_MB * 1024 * 1024)
    await ws.prepare(request)

    if not await club.hub.join(ws):
        await ws.close()
        return ws

    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                await viewer_hook.handle(club.hub, ws, msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.debug("Viewer socket error: %s", ws.exception())
                break
    finally:
        club.hub.leave(ws)
    return ws


@routes.get("/api/feed")
async def feed(request: web.Request) -> web.Response:
    messages = _club(request).cache.recent(cache_cfg.RECENT_LIMIT)
    return web.json_response({"messages": serialize_messages(messages)})


@routes.get("/api/messages/export")
async def export_messages(request: web.Request) -> web.Response:
    payload = build_export(_club(request).cache.all())
    return web.json_response(
        payload,
        dumps=functools.partial(json.dumps, indent=2),
        headers={"Content-Disposition": 'attachment; filename="friend-club-messages.json"'},
    )


@routes.post("/api/message")
async def post_message(request: web.Request) -> web.Response:
    club = _club(request)
    try:
        body = await request.json()
    except ValueError:
        return _failure(ValueError("Request body must be JSON"))
    if not isinstance(body, dict) or not isinstance(body.get("text"), str):
        return _failure(ValueError("text is required"))

    try:
        result = await club.post(
            body.get("sessionId"),
            body["text"],
            media_data_url=body.get("gifDataUrl") or None,
            cross_post=bool(body.get("postToBsky")),
            expires_in=body.get("expiresIn") or None,
        )
    except (SessionError, ValueError, RepoError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning("Post failed: %s", exc)
        return _failure(exc)

    payload = {
        "success": True,
        "uri": result.uri,
        "rkey": result.rkey,
        "blueskyPostUri": result.cross_post_uri,
    }
    if result.cross_post_uri:
        cached = club.cache.get(result.rkey)
        handle = (cached.author_handle if cached else None) or result.uri.split("/")[2]
        payload["blueskyPostUrl"] = bluesky_post_url(handle, result.cross_post_uri)
    return web.json_response(payload)


@routes.delete("/api/message/{rkey}")
async def delete_message(request: web.Request) -> web.Response:
    club = _club(request)
    try:
        await club.delete(request.query.get("sessionId"), request.match_info["rkey"])
    except (SessionError, RepoError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning("Delete failed: %s", exc)
        return _failure(exc)
    return web.json_response({"success": True})


@routes.get("/api/my-posts")
async def my_posts(request: web.Request) -> web.Response:
    club = _club(request)
    try:
        posts = await club.my_posts(request.query.get("sessionId"))
    except (SessionError, RepoError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
        return web.json_response({"error": str(exc), "posts": []}, status=_status_for(exc))
    return web.json_response({"posts": posts})
