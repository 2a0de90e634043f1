import asyncio

from friend_club.cache import ChatMessage, MessageCache
from friend_club.event_hooks import commit_hook, login_hook, viewer_hook
from friend_club.sessions import SessionRegistry
from friend_club.stream import MapResult


class RecordingHub:
    def __init__(self):
        self.created = []
        self.deleted = []
        self.submitted = []

    async def broadcast_create(self, message):
        self.created.append(message.id)

    async def broadcast_delete(self, message_id):
        self.deleted.append(message_id)

    async def submit(self, viewer, payload):
        self.submitted.append(payload)
        return None


def _msg(mid, created_at):
    return ChatMessage(id=mid, text=mid, author_id="did:plc:a", created_at=created_at)


def test_commit_hook_accept_and_reject():
    cache = MessageCache(maxlen=20, clock=lambda: 0)
    hub = RecordingHub()

    async def scenario():
        await commit_hook.handle(MapResult.accept(_msg("a", 1)), cache, hub)
        await commit_hook.handle(MapResult.ignore(), cache, hub)
        await commit_hook.handle(MapResult.reject("a"), cache, hub)

    asyncio.run(scenario())

    assert hub.created == ["a"]
    assert hub.deleted == ["a"]
    assert cache.count() == 0


def test_commit_hook_skips_broadcast_for_message_older_than_window():
    cache = MessageCache(maxlen=1, clock=lambda: 0)
    hub = RecordingHub()
    cache.upsert(_msg("new", 10))

    asyncio.run(commit_hook.handle(MapResult.accept(_msg("old", 1)), cache, hub))

    assert hub.created == []
    assert [m.id for m in cache.all()] == ["new"]


def test_viewer_hook_routes_only_chat_frames():
    hub = RecordingHub()

    async def scenario():
        await viewer_hook.handle(hub, object(), "{not json")
        await viewer_hook.handle(hub, object(), '{"type": "ping"}')
        await viewer_hook.handle(hub, object(), '{"type": "chat", "text": "hi", "userId": "u"}')

    asyncio.run(scenario())

    assert hub.submitted == [{"type": "chat", "text": "hi", "userId": "u"}]


class FakeReconciler:
    def __init__(self):
        self.swept = []

    async def sweep_user(self, context):
        self.swept.append(context.did)
        return 2


class Ctx:
    def __init__(self, did):
        self.did = did


def test_login_hook_registers_and_sweeps():
    registry = SessionRegistry()
    reconciler = FakeReconciler()
    ctx = Ctx("did:plc:alice")

    deleted = asyncio.run(login_hook.handle(registry, reconciler, "s1", ctx))

    assert deleted == 2
    assert registry.get("s1") is ctx
    assert reconciler.swept == ["did:plc:alice"]

    login_hook.handle_logout(registry, "s1")
    login_hook.handle_logout(registry, "s1")
    assert registry.get("s1") is None
