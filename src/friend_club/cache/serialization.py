"""
Cache serialization helpers.

:func:`serialize_messages` converts cached messages into the wire dictionaries
sent to viewers and HTTP clients. :func:`build_export` wraps the full cache
contents in the operator export envelope.
"""

from __future__ import annotations

from typing import Iterable

from .model import ChatMessage, format_timestamp_ms, now_ms


def serialize_messages(messages: Iterable[ChatMessage]) -> list[dict]:
    """Return the wire form of each message, preserving order."""

    return [m.to_dict() for m in messages]


def build_export(messages: Iterable[ChatMessage], exported_at: int | None = None) -> dict:
    """Return the export document for ``messages`` (normally ``cache.all()``)."""

    payload = serialize_messages(messages)
    return {
        "exportedAt": format_timestamp_ms(exported_at if exported_at is not None else now_ms()),
        "totalMessages": len(payload),
        "messages": payload,
    }


__all__ = ["serialize_messages", "build_export"]
