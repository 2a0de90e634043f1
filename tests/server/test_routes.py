import asyncio

from aiohttp import test_utils

from friend_club.app import FriendClub
from friend_club.cache import ChatMessage, MessageCache
from friend_club.errors import RepoError
from friend_club.server import create_app

COLLECTION = "is.keith.fc.message"
NOW = 1_717_243_200_000


class FakeResolver:
    async def resolve_handle(self, did):
        return "alice.test"

    async def blob_url(self, did, cid):
        return f"https://pds.test/blob/{cid}"

    async def close(self):
        pass


class FakeContext:
    did = "did:plc:alice"

    def __init__(self):
        self.deleted = []
        self.fail_delete = False

    async def create_record(self, collection, record):
        return {"uri": f"at://{self.did}/{collection}/rk1"}

    async def delete_record(self, collection, rkey):
        if self.fail_delete:
            raise RepoError("com.atproto.repo.deleteRecord", 500, "down")
        self.deleted.append((collection, rkey))

    async def upload_blob(self, data, mime_type):
        return {"ref": {"$link": "bafy"}, "mimeType": mime_type}

    async def list_records(self, collection, limit=100):
        return [
            {
                "uri": f"at://{self.did}/{collection}/rk9",
                "value": {"text": "mine", "createdAt": "2024-06-01T11:00:00Z"},
            }
        ]


def _club():
    cache = MessageCache(maxlen=20, clock=lambda: NOW)
    club = FriendClub(collection=COLLECTION, cache=cache, resolver=FakeResolver(), snapshot_path="", clock=lambda: NOW)
    return club


def _run(club, scenario):
    async def wrapper():
        async with test_utils.TestClient(test_utils.TestServer(create_app(club, manage_lifecycle=False))) as client:
            return await scenario(client)

    return asyncio.run(wrapper())


def test_health_feed_and_export():
    club = _club()
    club.cache.upsert(ChatMessage(id="a", text="hi", author_id="did:plc:a", created_at=1))
    club.cache.upsert(ChatMessage(id="b", text="gone", author_id="did:plc:a", created_at=2, expires_at=NOW - 1))

    async def scenario(client):
        health = await (await client.get("/health")).json()
        feed = await (await client.get("/api/feed")).json()
        resp = await client.get("/api/messages/export")
        return health, feed, resp.headers["Content-Disposition"], await resp.json()

    health, feed, disposition, export = _run(club, scenario)

    assert health == {"status": "ok"}
    assert [m["id"] for m in feed["messages"]] == ["a"]
    assert "attachment" in disposition
    assert export["totalMessages"] == 2
    assert [m["id"] for m in export["messages"]] == ["a", "b"]


def test_post_requires_session_and_valid_input():
    club = _club()
    club.registry.add("s1", FakeContext())

    async def scenario(client):
        no_session = await client.post("/api/message", json={"text": "hi"})
        bad_expiry = await client.post("/api/message", json={"text": "hi", "sessionId": "s1", "expiresIn": "2w"})
        no_text = await client.post("/api/message", json={"sessionId": "s1"})
        return no_session.status, bad_expiry.status, no_text.status, await no_session.json()

    no_session, bad_expiry, no_text, body = _run(club, scenario)

    assert (no_session, bad_expiry, no_text) == (401, 400, 400)
    assert body == {"success": False, "error": "No session ID provided"}


def test_post_mirrors_into_cache_and_viewers():
    club = _club()
    club.registry.add("s1", FakeContext())

    async def scenario(client):
        ws = await client.ws_connect("/ws")
        connected = await ws.receive_json()
        resp = await client.post("/api/message", json={"text": "hi", "sessionId": "s1", "expiresIn": "1h"})
        body = await resp.json()
        frame = await ws.receive_json()
        await ws.close()
        return connected, body, frame

    connected, body, frame = _run(club, scenario)

    assert connected == {"type": "connected", "messages": []}
    assert body["success"] is True
    assert body["rkey"] == "rk1"
    assert frame["type"] == "new_message"
    assert frame["message"]["authorHandle"] == "alice.test"
    assert frame["message"]["expiresAt"] == NOW + 3_600_000
    assert club.cache.contains("rk1")


def test_delete_and_my_posts():
    club = _club()
    ctx = FakeContext()
    club.registry.add("s1", ctx)
    club.cache.upsert(ChatMessage(id="rk1", text="hi", author_id=ctx.did, created_at=1))

    async def scenario(client):
        ok = await client.delete("/api/message/rk1", params={"sessionId": "s1"})
        ctx.fail_delete = True
        failed = await client.delete("/api/message/rk2", params={"sessionId": "s1"})
        mine = await client.get("/api/my-posts", params={"sessionId": "s1"})
        anon = await client.get("/api/my-posts")
        return ok.status, failed.status, await mine.json(), anon.status

    ok, failed, mine, anon = _run(club, scenario)

    assert ok == 200
    assert failed == 502
    assert anon == 401
    assert ctx.deleted == [(COLLECTION, "rk1")]
    assert not club.cache.contains("rk1")
    assert mine["posts"][0]["rkey"] == "rk9"
    assert mine["posts"][0]["text"] == "mine"


def test_viewer_chat_frame_is_echoed():
    club = _club()

    async def scenario(client):
        ws = await client.ws_connect("/ws")
        await ws.receive_json()
        await ws.send_json({"type": "chat", "text": "yo", "userId": "guest"})
        frame = await ws.receive_json()
        await ws.close()
        return frame

    frame = _run(club, scenario)

    assert frame["type"] == "new_message"
    assert frame["message"]["text"] == "yo"
    assert frame["message"]["authorId"] == "guest"
    assert club.cache.count() == 1
