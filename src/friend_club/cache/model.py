"""Dataclass model for cached chat messages.

Wire schema (output of :meth:`ChatMessage.to_dict`)::

    {"id": "3kabc", "text": "hi", "authorId": "did:plc:...",
     "authorHandle": "alice.bsky.social", "createdAt": 1717000000000,
     "mediaUrl": "https://pds.example/xrpc/com.atproto.sync.getBlob?...",
     "crossPostRef": "at://did:plc:.../app.bsky.feed.post/3kxyz",
     "expiresAt": 1717000060000}

Optional keys are dropped when ``None``. Timestamps are epoch milliseconds.
"""

from __future__ import annotations

import datetime
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


def _drop_nones(d: Dict[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of ``d`` without keys mapped to ``None``."""
    return {k: v for k, v in d.items() if v is not None}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def parse_timestamp_ms(value: Any) -> Optional[int]:
    """Parse an ISO-8601 string (or a number of ms) into epoch milliseconds.

    Returns ``None`` for anything that cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        # Normalize naive timestamps so comparisons against the clock are consistent.
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return int(parsed.timestamp() * 1000)


def format_timestamp_ms(value: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC string with a ``Z`` suffix."""
    dt = datetime.datetime.fromtimestamp(value / 1000, tz=datetime.timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One cached chat message, keyed by its remote record key."""

    id: str
    text: str
    author_id: str
    created_at: int
    media_url: Optional[str] = None
    author_handle: Optional[str] = None
    cross_post_ref: Optional[str] = None
    expires_at: Optional[int] = None

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        base = {
            "id": self.id,
            "text": self.text,
            "mediaUrl": self.media_url,
            "authorId": self.author_id,
            "authorHandle": self.author_handle,
            "createdAt": self.created_at,
            "crossPostRef": self.cross_post_ref,
            "expiresAt": self.expires_at,
        }
        return _drop_nones(base)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        """Rebuild a message from :meth:`to_dict` output.

        Raises ``KeyError``/``ValueError`` when required fields are missing.
        """
        created_at = parse_timestamp_ms(data["createdAt"])
        if created_at is None:
            raise ValueError(f"Invalid createdAt: {data['createdAt']!r}")
        return cls(
            id=str(data["id"]),
            text=str(data.get("text") or ""),
            author_id=str(data["authorId"]),
            created_at=created_at,
            media_url=data.get("mediaUrl"),
            author_handle=data.get("authorHandle"),
            cross_post_ref=data.get("crossPostRef"),
            expires_at=parse_timestamp_ms(data.get("expiresAt")),
        )


__all__ = [
    "ChatMessage",
    "now_ms",
    "parse_timestamp_ms",
    "format_timestamp_ms",
]
