import asyncio

from friend_club.app import FriendClub
from friend_club.cache import ChatMessage, MessageCache
from friend_club.cache import snapshot

COLLECTION = "is.keith.fc.message"
NOW = 1_717_243_200_000


class FakeStream:
    def __init__(self):
        self.started = None
        self.stopped = False

    def start(self, collection_filter, sink):
        self.started = (collection_filter, sink)

    async def stop(self):
        self.stopped = True


class FakeResolver:
    def __init__(self):
        self.closed = False

    async def resolve_handle(self, did):
        return None

    async def blob_url(self, did, cid):
        return None

    async def close(self):
        self.closed = True


class FakeContext:
    did = "did:plc:alice"

    def __init__(self):
        self.deleted = []

    async def list_records(self, collection, limit=100):
        return [{"uri": f"at://{self.did}/{collection}/old", "value": {"expiresAt": "2000-01-01T00:00:00Z"}}]

    async def delete_record(self, collection, rkey):
        self.deleted.append(rkey)


def _club(tmp_path):
    stream, resolver = FakeStream(), FakeResolver()
    club = FriendClub(
        collection=COLLECTION,
        cache=MessageCache(maxlen=20, clock=lambda: NOW),
        resolver=resolver,
        stream=stream,
        snapshot_path=str(tmp_path / "snapshot.json.gz"),
        clock=lambda: NOW,
    )
    return club, stream, resolver


def test_start_restores_snapshot_and_stop_persists(tmp_path):
    club, stream, resolver = _club(tmp_path)
    snapshot.save(club.snapshot_path, [ChatMessage(id="kept", text="hi", author_id="did:plc:a", created_at=1)])

    async def scenario():
        await club.start()
        running = club.reconciler.running
        club.cache.upsert(ChatMessage(id="new", text="yo", author_id="did:plc:a", created_at=2))
        await club.stop()
        return running

    assert asyncio.run(scenario()) is True

    assert stream.started[0] == COLLECTION
    assert stream.started[1] == club.pipeline.submit
    assert stream.stopped
    assert resolver.closed
    assert not club.reconciler.running
    assert [m.id for m in snapshot.load(club.snapshot_path)] == ["kept", "new"]


def test_login_registers_and_sweeps_then_logout(tmp_path):
    club, _, _ = _club(tmp_path)
    ctx = FakeContext()
    club.cache.upsert(ChatMessage(id="old", text="x", author_id=ctx.did, created_at=1))

    deleted = asyncio.run(club.complete_login("s1", ctx))

    assert deleted == 1
    assert ctx.deleted == ["old"]
    assert not club.cache.contains("old")
    assert club.registry.get("s1") is ctx

    club.logout("s1")
    assert len(club.registry) == 0


def test_my_posts_skips_malformed_records(tmp_path):
    club, _, _ = _club(tmp_path)

    class MessyContext(FakeContext):
        async def list_records(self, collection, limit=100):
            return [
                "junk",
                {"uri": None, "value": {"text": "no uri"}},
                {"uri": f"at://{self.did}/{collection}/novalue", "value": "text"},
                {"uri": f"at://{self.did}/{collection}/good", "value": {"text": "ok"}},
            ]

    club.registry.add("s1", MessyContext())

    posts = asyncio.run(club.my_posts("s1"))

    assert [p["rkey"] for p in posts] == ["good"]
    assert posts[0]["text"] == "ok"
