"""
Optional on-disk snapshot of the message cache.

Snapshots are gzipped JSON documents with the export schema::

    {"exportedAt": str, "totalMessages": int, "messages": [ChatMessage-as-dict, ...]}

The cache is only a projection of the remote repositories, so a missing or
unreadable snapshot simply yields no messages. :func:`save` writes through a
temporary file and renames it into place.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
from pathlib import Path
from typing import List

from .model import ChatMessage
from .serialization import build_export

logger = logging.getLogger(__name__)


def load(path: str | Path) -> List[ChatMessage]:
    p = Path(path)
    if not p.exists():
        return []
    try:
        with gzip.open(p, "rt", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable cache snapshot %s: %s", p, exc)
        return []

    out: List[ChatMessage] = []
    for item in raw.get("messages", []) if isinstance(raw, dict) else []:
        try:
            out.append(ChatMessage.from_dict(item))
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping malformed snapshot entry: %r", item)
    return out


def save(path: str | Path, messages: List[ChatMessage]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".tmp")
    with gzip.open(tmp, "wt", encoding="utf-8") as f:
        json.dump(build_export(messages), f)
    # Readers only ever see a complete snapshot.
    os.replace(tmp, p)
