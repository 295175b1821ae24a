"""Fetch capability: perform one HTTP request and hand back a byte stream.

The controller only ever talks to a ``Fetch``. ``HttpxFetch`` is the default
implementation; tests and proxies can inject their own.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from .types import FetchRequest, FetchResponse

log = structlog.get_logger()


class Fetch(Protocol):
    async def __call__(self, request: FetchRequest) -> FetchResponse: ...


class HttpxFetch:
    """Streams responses through an ``httpx.AsyncClient``.

    A client passed in is shared and left open; one created here is owned
    and closed by ``aclose()``.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, **client_kwargs: Any) -> None:
        self._owns_client = client is None
        if client is None:
            client_kwargs.setdefault("follow_redirects", True)
            # No read timeout: an idle event stream is not an error.
            client_kwargs.setdefault("timeout", httpx.Timeout(None, connect=30.0))
            client = httpx.AsyncClient(**client_kwargs)
        self.client = client

    async def __call__(self, request: FetchRequest) -> FetchResponse:
        http_request = self.client.build_request(
            request.method.upper(),
            request.url,
            headers=request.headers,
            content=request.body,
        )
        response = await self.client.send(http_request, stream=True)
        log.debug(
            "fetch_response",
            url=request.url,
            status=response.status_code,
            http_version=response.http_version,
        )
        return FetchResponse(
            status=response.status_code,
            reason=response.reason_phrase,
            headers=response.headers,
            stream=response.aiter_bytes(),
            close=response.aclose,
            raw=response,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
