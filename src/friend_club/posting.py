"""
Interactive post and delete against a user's own repository.

:func:`post_message` uploads optional media, optionally cross-posts to the
user's Bluesky feed, and creates the chat record. :func:`delete_message`
removes a chat record and, when it belongs to the same user, its cross-post.
Failures of the main record call propagate to the caller; cross-post problems
are logged and otherwise ignored.

Media is uploaded as given. Transcoding (e.g. webm -> mp4) happens outside
this package.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from friend_club.cache.model import ChatMessage, format_timestamp_ms, now_ms
from friend_club.config import core
from friend_club.config import stream as stream_cfg
from friend_club.stream.mapper import blob_cid
from friend_club.sessions import AuthenticatedContext

logger = logging.getLogger(__name__)

FEED_POST_COLLECTION = "app.bsky.feed.post"

# Milliseconds for each user-selectable expiration.
EXPIRATION_OPTIONS: Dict[str, int] = {
    "1m": 1 * 60 * 1000,
    "5m": 5 * 60 * 1000,
    "30m": 30 * 60 * 1000,
    "1h": 60 * 60 * 1000,
    "24h": 24 * 60 * 60 * 1000,
}


@dataclass(frozen=True, slots=True)
class MediaUpload:
    data: bytes
    mime_type: str


@dataclass(slots=True)
class PostResult:
    uri: str
    rkey: str
    record: Dict[str, Any]
    cross_post_uri: str | None = None
    blob: Dict[str, Any] | None = field(default=None, repr=False)

    def to_message(self, did: str, handle: str | None, media_url: str | None) -> ChatMessage:
        """Build the cache entry mirroring this post."""

        return ChatMessage.from_dict(
            {
                "id": self.rkey,
                "text": self.record.get("text", ""),
                "authorId": did,
                "authorHandle": handle,
                "createdAt": self.record["createdAt"],
                "mediaUrl": media_url,
                "crossPostRef": self.cross_post_uri,
                "expiresAt": self.record.get("expiresAt"),
            }
        )


def decode_data_url(url: str) -> MediaUpload:
    """Decode a ``data:<mime>;base64,<payload>`` URL.

    Raises ``ValueError`` for anything else.
    """

    if not url.startswith("data:") or "," not in url:
        raise ValueError("media must be a data: URL")
    header, payload = url[len("data:"):].split(",", 1)
    parts = header.split(";")
    if "base64" not in parts[1:]:
        raise ValueError("media data URL must be base64 encoded")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("media data URL has an invalid base64 payload") from exc
    return MediaUpload(data=data, mime_type=parts[0] or "application/octet-stream")


def expires_at_for(expires_in: str | None, now: int) -> int | None:
    if not expires_in:
        return None
    try:
        return now + EXPIRATION_OPTIONS[expires_in]
    except KeyError:
        raise ValueError(f"Unknown expiration option: {expires_in!r}") from None


def _feed_post_record(text: str, created_at: str, blob: Dict[str, Any] | None) -> Dict[str, Any]:
    prefix = f"{text}\n\nvia {core.APP_NAME}: "
    full = prefix + core.BASE_URL
    record: Dict[str, Any] = {
        "$type": FEED_POST_COLLECTION,
        "text": full,
        "createdAt": created_at,
        "langs": ["en"],
        "facets": [
            {
                # Facet offsets are UTF-8 byte positions.
                "index": {
                    "byteStart": len(prefix.encode("utf-8")),
                    "byteEnd": len(full.encode("utf-8")),
                },
                "features": [
                    {"$type": "app.bsky.richtext.facet#link", "uri": core.BASE_URL}
                ],
            }
        ],
    }
    if blob and str(blob.get("mimeType", "")).startswith("video/"):
        record["embed"] = {
            "$type": "app.bsky.embed.video",
            "video": blob,
            "aspectRatio": {"width": 640, "height": 480},
        }
    return record


async def post_message(
    context: AuthenticatedContext,
    text: str,
    *,
    media: MediaUpload | None = None,
    cross_post: bool = False,
    expires_in: str | None = None,
    collection: str | None = None,
    clock: Callable[[], int] = now_ms,
) -> PostResult:
    """Create a chat record in ``context``'s repository."""

    collection = collection or stream_cfg.COLLECTION
    now = clock()
    expires_at = expires_at_for(expires_in, now)

    blob: Dict[str, Any] | None = None
    if media is not None:
        blob = await context.upload_blob(media.data, media.mime_type)
        if not blob_cid(blob):
            raise ValueError("uploadBlob returned no blob reference")

    created_at = format_timestamp_ms(now)
    record: Dict[str, Any] = {"text": text, "createdAt": created_at}
    if blob:
        record["video"] = blob
    if expires_at is not None:
        record["expiresAt"] = format_timestamp_ms(expires_at)

    cross_post_uri: str | None = None
    if cross_post:
        try:
            created = await context.create_record(
                FEED_POST_COLLECTION, _feed_post_record(text, created_at, blob)
            )
            cross_post_uri = created.get("uri") or None
        except Exception as e:
            # The chat post still goes through without its cross-post.
            logger.warning("Cross-post for %s failed: %s", context.did, e)
        if cross_post_uri:
            record["blueskyPostUri"] = cross_post_uri

    created = await context.create_record(collection, record)
    uri = created.get("uri")
    if not isinstance(uri, str) or not uri:
        raise ValueError("createRecord returned no uri")
    rkey = uri.rstrip("/").rsplit("/", 1)[-1]

    logger.info("Posted %s for %s", uri, context.did)
    return PostResult(uri=uri, rkey=rkey, record=record, cross_post_uri=cross_post_uri, blob=blob)


async def delete_message(
    context: AuthenticatedContext,
    rkey: str,
    *,
    cross_post_ref: str | None = None,
    collection: str | None = None,
) -> None:
    """Delete a chat record (errors propagate) and its cross-post (best effort)."""

    collection = collection or stream_cfg.COLLECTION
    await context.delete_record(collection, rkey)
    logger.info("Deleted %s/%s for %s", collection, rkey, context.did)

    own_prefix = f"at://{context.did}/{FEED_POST_COLLECTION}/"
    if cross_post_ref and cross_post_ref.startswith(own_prefix):
        try:
            await context.delete_record(FEED_POST_COLLECTION, cross_post_ref[len(own_prefix):])
        except Exception as e:
            logger.warning("Failed to delete cross-post %s: %s", cross_post_ref, e)


def bluesky_post_url(handle: str, cross_post_uri: str) -> str:
    return f"https://bsky.app/profile/{handle}/post/{cross_post_uri.rsplit('/', 1)[-1]}"


__all__ = [
    "EXPIRATION_OPTIONS",
    "MediaUpload",
    "PostResult",
    "bluesky_post_url",
    "decode_data_url",
    "delete_message",
    "expires_at_for",
    "post_message",
]
