"""Firehose subscription and event mapping."""

from .backoff import Backoff
from .client import JetstreamClient
from .mapper import EventMapper, MapResult

__all__ = ["Backoff", "JetstreamClient", "EventMapper", "MapResult"]
