"""
Bounded, recency-ordered message cache.

:class:`MessageCache` holds the most recent chat messages seen on the
firehose (or mirrored from local posts). It is a disposable projection of the
remote repositories: losing it is harmless because the stream repopulates it.

Entries are ordered by ``created_at`` with ties broken by the order in which
ids first arrived. ``upsert`` replaces an existing id in place (keeping its
arrival slot) and then evicts the oldest entries until the configured maximum
is respected. Expiration is applied lazily on read: ``recent`` hides expired
entries while ``all`` and ``expired`` still expose them until they are
physically deleted.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List

from friend_club.config import cache as cache_cfg

from .model import ChatMessage, now_ms

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    message: ChatMessage
    seq: int

    @property
    def sort_key(self) -> tuple[int, int]:
        return self.message.created_at, self.seq


@dataclass
class MessageCache:
    """In-memory bounded cache keyed by message id."""

    maxlen: int = field(default_factory=lambda: cache_cfg.CACHE_LENGTH)
    clock: Callable[[], int] = field(default=now_ms, repr=False)
    _entries: dict[str, _Entry] = field(init=False, repr=False)
    _seq: itertools.count = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.maxlen <= 0:
            raise ValueError("maxlen must be > 0")
        self._entries = {}
        self._seq = itertools.count()

    # ------------------------------------------------------------------ #
    # WRITE helpers
    # ------------------------------------------------------------------ #

    def upsert(self, message: ChatMessage) -> List[str]:
        """Insert or replace ``message``; return ids evicted to respect ``maxlen``."""

        existing = self._entries.get(message.id)
        if existing is not None:
            existing.message = message
        else:
            self._entries[message.id] = _Entry(message, next(self._seq))

        evicted: List[str] = []
        # Size-based eviction: expired-but-present entries still count toward the limit.
        while len(self._entries) > self.maxlen:
            oldest = min(self._entries.values(), key=lambda e: e.sort_key)
            del self._entries[oldest.message.id]
            evicted.append(oldest.message.id)

        if evicted:
            logger.debug("Evicted %d message(s) from cache: %s", len(evicted), evicted)
        return evicted

    def delete(self, message_id: str) -> bool:
        """Remove ``message_id`` if cached; return whether anything was removed."""

        return self._entries.pop(message_id, None) is not None

    def load(self, messages: Iterable[ChatMessage]) -> None:
        """Upsert ``messages`` in order (used when restoring a snapshot)."""

        for message in messages:
            self.upsert(message)

    def clear(self) -> None:
        self._entries.clear()

    # ------------------------------------------------------------------ #
    # READ helpers
    # ------------------------------------------------------------------ #

    def _ordered(self) -> List[ChatMessage]:
        return [e.message for e in sorted(self._entries.values(), key=lambda e: e.sort_key)]

    def get(self, message_id: str) -> ChatMessage | None:
        entry = self._entries.get(message_id)
        return entry.message if entry is not None else None

    def contains(self, message_id: str) -> bool:
        return message_id in self._entries

    def recent(self, limit: int | None = None) -> List[ChatMessage]:
        """Return up to ``limit`` live messages ordered oldest -> newest.

        When more than ``limit`` live messages exist the newest ones are kept.
        """

        if limit is None:
            limit = cache_cfg.RECENT_LIMIT
        if limit < 0:
            raise ValueError("limit must be >= 0 or None")
        if limit == 0:
            return []
        now = self.clock()
        live = [m for m in self._ordered() if not m.is_expired(now)]
        return live[-limit:]

    def all(self) -> List[ChatMessage]:
        """Return every stored message, expired or not, oldest -> newest."""

        return self._ordered()

    def expired(self) -> List[ChatMessage]:
        """Return messages whose expiration time has passed."""

        now = self.clock()
        return [e.message for e in self._entries.values() if e.message.is_expired(now)]

    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["MessageCache"]
