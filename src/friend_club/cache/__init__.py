"""Bounded message cache and its serialization helpers."""

from .model import ChatMessage, now_ms
from .store import MessageCache

__all__ = ["ChatMessage", "MessageCache", "now_ms"]
