"""Build the outgoing header set for one connection attempt."""

from __future__ import annotations

import inspect

import httpx

from .errors import EVENT_STREAM_CONTENT_TYPE
from .types import HeaderMap, HeaderSource

LAST_EVENT_ID_HEADER = "last-event-id"


async def resolve_header_source(source: HeaderSource | None) -> HeaderMap:
    """Call (and await, if needed) a header factory, or return the map as-is."""
    if source is None:
        return {}
    if callable(source):
        result = source()
        if inspect.isawaitable(result):
            result = await result
        return result or {}
    return source


async def build_request_headers(
    source: HeaderSource | None,
    last_event_id: str | None = None,
) -> httpx.Headers:
    """Resolve the caller's headers and add the protocol defaults.

    Entries whose value is None are left out. ``accept`` and
    ``last-event-id`` are only filled in when the caller did not set them.
    """
    headers = httpx.Headers()
    for key, value in (await resolve_header_source(source)).items():
        if value is None:
            continue
        headers[key] = value
    if "accept" not in headers:
        headers["accept"] = EVENT_STREAM_CONTENT_TYPE
    if last_event_id and LAST_EVENT_ID_HEADER not in headers:
        headers[LAST_EVENT_ID_HEADER] = last_event_id
    return headers
