"""
DID document lookups for handles and PDS endpoints.

``did:plc`` identities resolve through the PLC directory
(``{PLC_DIRECTORY_URL}/{did}``); ``did:web`` identities resolve through
``https://<host>/.well-known/did.json``. Documents are kept in a small
in-memory LRU so a burst of events from one writer costs one lookup.

Every public coroutine degrades to ``None`` on failure. Callers treat a
missing handle or media URL as a degraded message, never as an error.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Dict
from urllib.parse import quote, urlencode

import aiohttp

from friend_club.config import core

logger = logging.getLogger(__name__)

PDS_SERVICE_ID = "#atproto_pds"
PDS_SERVICE_TYPE = "AtprotoPersonalDataServer"


def handle_from_document(doc: Dict[str, Any]) -> str | None:
    """Return the first ``at://`` alias of ``doc`` without its scheme."""

    for alias in doc.get("alsoKnownAs") or []:
        if isinstance(alias, str) and alias.startswith("at://"):
            return alias[len("at://"):] or None
    return None


def pds_from_document(doc: Dict[str, Any]) -> str | None:
    """Return the PDS service endpoint declared in ``doc``."""

    for service in doc.get("service") or []:
        if not isinstance(service, dict):
            continue
        sid = str(service.get("id", ""))
        if sid.endswith(PDS_SERVICE_ID) or service.get("type") == PDS_SERVICE_TYPE:
            endpoint = service.get("serviceEndpoint")
            if isinstance(endpoint, str) and endpoint:
                return endpoint.rstrip("/")
    return None


class IdentityResolver:
    """Resolve DIDs to handles, PDS endpoints, and blob fetch URLs."""

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession | None = None,
        plc_directory: str | None = None,
        timeout: float | None = None,
        cache_size: int | None = None,
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._plc = (plc_directory or core.PLC_DIRECTORY_URL).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(
            total=timeout if timeout is not None else core.RESOLVE_TIMEOUT
        )
        self._cache_size = cache_size if cache_size is not None else core.DID_CACHE_SIZE
        self._docs: OrderedDict[str, Dict[str, Any]] = OrderedDict()

    def document_url(self, did: str) -> str | None:
        if did.startswith("did:plc:"):
            return f"{self._plc}/{quote(did, safe=':')}"
        if did.startswith("did:web:"):
            host = did[len("did:web:"):]
            if not host or ":" in host:
                # Path-based did:web identities are not valid for atproto.
                return None
            return f"https://{host}/.well-known/did.json"
        return None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def forget(self, did: str) -> None:
        """Drop a cached document, e.g. after an identity event."""

        self._docs.pop(did, None)

    async def resolve_document(self, did: str) -> Dict[str, Any] | None:
        if did in self._docs:
            self._docs.move_to_end(did)
            return self._docs[did]

        url = self.document_url(did)
        if url is None:
            logger.debug("Unsupported DID method: %s", did)
            return None

        try:
            async with self._get_session().get(url, timeout=self._timeout) as r:
                r.raise_for_status()
                doc = await r.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("Failed to resolve DID document for %s: %s", did, e)
            return None

        if not isinstance(doc, dict):
            return None

        self._docs[did] = doc
        while len(self._docs) > self._cache_size:
            self._docs.popitem(last=False)
        return doc

    async def resolve_handle(self, did: str) -> str | None:
        doc = await self.resolve_document(did)
        return handle_from_document(doc) if doc else None

    async def resolve_service_endpoint(self, did: str) -> str | None:
        doc = await self.resolve_document(did)
        return pds_from_document(doc) if doc else None

    async def blob_url(self, did: str, cid: str) -> str | None:
        """Build a ``com.atproto.sync.getBlob`` URL on the writer's PDS."""

        endpoint = await self.resolve_service_endpoint(did)
        if not endpoint:
            return None
        return f"{endpoint}/xrpc/com.atproto.sync.getBlob?{urlencode({'did': did, 'cid': cid})}"


__all__ = [
    "IdentityResolver",
    "handle_from_document",
    "pds_from_document",
]
