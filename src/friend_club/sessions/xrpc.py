"""
:class:`AuthenticatedContext` backed by plain XRPC calls over aiohttp.

The login flow owns credentials. It hands this class the identity's PDS
endpoint and whatever authorization headers its tokens require; the context
only issues the four repository calls the app needs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

import aiohttp

from friend_club.errors import RepoError

logger = logging.getLogger(__name__)


class XrpcContext:
    """Repository calls against ``service_endpoint`` on behalf of ``did``."""

    def __init__(
        self,
        did: str,
        service_endpoint: str,
        session: aiohttp.ClientSession,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.did = did
        self.service_endpoint = service_endpoint.rstrip("/")
        self._session = session
        self._headers = dict(headers or {})

    def __repr__(self) -> str:
        return f"XrpcContext(did={self.did!r}, service_endpoint={self.service_endpoint!r})"

    def _url(self, method: str) -> str:
        return f"{self.service_endpoint}/xrpc/{method}"

    async def _call(
        self,
        http_method: str,
        method: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        data: bytes | None = None,
        content_type: str | None = None,
    ) -> Dict[str, Any]:
        headers = dict(self._headers)
        if content_type:
            headers["Content-Type"] = content_type
        async with self._session.request(
            http_method,
            self._url(method),
            params=params,
            json=json,
            data=data,
            headers=headers,
        ) as r:
            if r.status >= 400:
                raise RepoError(method, r.status, await r.text())
            if r.content_length == 0:
                return {}
            return await r.json(content_type=None) or {}

    async def create_record(self, collection: str, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(
            "POST",
            "com.atproto.repo.createRecord",
            json={"repo": self.did, "collection": collection, "record": record},
        )

    async def delete_record(self, collection: str, rkey: str) -> None:
        await self._call(
            "POST",
            "com.atproto.repo.deleteRecord",
            json={"repo": self.did, "collection": collection, "rkey": rkey},
        )

    async def upload_blob(self, data: bytes, mime_type: str) -> Dict[str, Any]:
        logger.info("Uploading blob (%d bytes, %s) for %s", len(data), mime_type, self.did)
        payload = await self._call(
            "POST",
            "com.atproto.repo.uploadBlob",
            data=data,
            content_type=mime_type,
        )
        return payload.get("blob") or {}

    async def list_records(self, collection: str, limit: int = 100) -> list[Dict[str, Any]]:
        payload = await self._call(
            "GET",
            "com.atproto.repo.listRecords",
            params={"repo": self.did, "collection": collection, "limit": str(limit)},
        )
        records = payload.get("records")
        return records if isinstance(records, list) else []


__all__ = ["XrpcContext"]
