import pytest

from friend_club.cache import ChatMessage, MessageCache


class FakeClock:
    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _msg(mid, created_at, text="hello", expires_at=None, author="did:plc:alice"):
    return ChatMessage(
        id=mid,
        text=text,
        author_id=author,
        created_at=created_at,
        expires_at=expires_at,
    )


def test_count_never_exceeds_maxlen():
    cache = MessageCache(maxlen=20, clock=FakeClock())
    for i in range(50):
        cache.upsert(_msg(f"m{i}", created_at=1000 + (i * 7919) % 97))
        assert cache.count() <= 20
    assert cache.count() == 20


def test_upsert_same_id_replaces_in_place():
    cache = MessageCache(maxlen=20, clock=FakeClock())
    cache.upsert(_msg("a", 1, text="first"))
    cache.upsert(_msg("b", 2))

    cache.upsert(_msg("a", 1, text="second"))

    assert cache.count() == 2
    recent = cache.recent(20)
    assert [m.id for m in recent] == ["a", "b"]
    assert recent[0].text == "second"


def test_twenty_five_creates_evict_five_oldest():
    cache = MessageCache(maxlen=20, clock=FakeClock())
    for i in range(25):
        cache.upsert(_msg(f"id{i}", created_at=1000 + i))

    assert cache.count() == 20
    ids = [m.id for m in cache.recent(20)]
    assert ids == [f"id{i}" for i in range(5, 25)]
    for i in range(5):
        assert f"id{i}" not in ids


def test_eviction_counts_expired_entries_and_picks_oldest_created():
    clock = FakeClock(now=10_000)
    cache = MessageCache(maxlen=3, clock=clock)
    cache.upsert(_msg("old-expired", 100, expires_at=5_000))
    cache.upsert(_msg("b", 200))
    cache.upsert(_msg("c", 300))

    evicted = cache.upsert(_msg("d", 400))

    assert evicted == ["old-expired"]
    assert [m.id for m in cache.all()] == ["b", "c", "d"]


def test_upsert_older_than_window_is_evicted_immediately():
    cache = MessageCache(maxlen=2, clock=FakeClock())
    cache.upsert(_msg("b", 200))
    cache.upsert(_msg("c", 300))

    evicted = cache.upsert(_msg("a", 100))

    assert evicted == ["a"]
    assert not cache.contains("a")


def test_ties_broken_by_arrival_order():
    cache = MessageCache(maxlen=20, clock=FakeClock())
    cache.upsert(_msg("second", 500))
    cache.upsert(_msg("first", 400))
    cache.upsert(_msg("third", 500))

    assert [m.id for m in cache.all()] == ["first", "second", "third"]

    # Replacing keeps the original arrival slot.
    cache.upsert(_msg("second", 500, text="edited"))
    assert [m.id for m in cache.all()] == ["first", "second", "third"]

    tiny = MessageCache(maxlen=2, clock=FakeClock())
    tiny.upsert(_msg("x", 1))
    tiny.upsert(_msg("y", 1))
    assert tiny.upsert(_msg("z", 1)) == ["x"]


def test_expired_entries_hidden_from_recent_but_present_elsewhere():
    clock = FakeClock(now=10_000)
    cache = MessageCache(maxlen=20, clock=clock)
    cache.upsert(_msg("live", 1, expires_at=20_000))
    cache.upsert(_msg("dead", 2, expires_at=9_000))
    cache.upsert(_msg("forever", 3))

    assert [m.id for m in cache.recent(20)] == ["live", "forever"]
    assert [m.id for m in cache.all()] == ["live", "dead", "forever"]
    assert [m.id for m in cache.expired()] == ["dead"]
    assert cache.count() == 3

    # Expiration is evaluated at read time.
    clock.now = 25_000
    assert [m.id for m in cache.recent(20)] == ["forever"]
    assert {m.id for m in cache.expired()} == {"live", "dead"}


def test_recent_limit_returns_newest_oldest_first():
    cache = MessageCache(maxlen=20, clock=FakeClock())
    for i in range(5):
        cache.upsert(_msg(f"m{i}", created_at=i))

    assert [m.id for m in cache.recent(2)] == ["m3", "m4"]
    assert cache.recent(0) == []
    with pytest.raises(ValueError):
        cache.recent(-1)


def test_delete_missing_id_is_noop():
    cache = MessageCache(maxlen=20, clock=FakeClock())
    cache.upsert(_msg("a", 1))

    assert cache.delete("nope") is False
    assert cache.count() == 1
    assert cache.delete("a") is True
    assert cache.count() == 0


def test_long_text_is_stored_verbatim():
    cache = MessageCache(maxlen=20, clock=FakeClock())
    text = "x" * 5000
    cache.upsert(_msg("long", 1, text=text))

    assert cache.get("long").text == text


def test_maxlen_must_be_positive():
    with pytest.raises(ValueError):
        MessageCache(maxlen=0)
