"""
httpx-backed implementation of the HTTP capability.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

import httpx

from wfengine.runtime.capabilities import HttpResponse


class HttpxRequester:
    def __init__(
        self,
        *,
        timeout_seconds: float = 30.0,
        connect_timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds)
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any,
    ) -> HttpResponse:
        client = await self._get_client()
        kwargs: dict = {"headers": dict(headers)}
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif isinstance(body, (str, bytes)):
            kwargs["content"] = body
        elif body is not None:
            kwargs["json"] = body

        response = await client.request(method, url, **kwargs)
        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response),
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type and response.content:
        try:
            return response.json()
        except json.JSONDecodeError:
            return response.text
    return response.text
