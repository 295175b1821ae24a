"""Demo SSE server for end-to-end tests (aiohttp)."""

import asyncio
import json

import pytest
from aiohttp import web

from sseplus.parse import Message

TICK_SECONDS = 0.005


async def _open_stream(request: web.Request) -> web.StreamResponse:
    response = web.StreamResponse(
        headers={"Content-Type": "text/event-stream", "Cache-Control": "no-cache"}
    )
    await response.prepare(request)
    return response


async def _push_forever(request: web.Request, data: str) -> web.StreamResponse:
    response = await _open_stream(request)
    try:
        while True:
            await response.write(Message(data=data).to_bytes())
            await asyncio.sleep(TICK_SECONDS)
    except ConnectionResetError:
        pass
    return response


async def _push_ten_then_close(request: web.Request) -> web.StreamResponse:
    request.app["last_event_ids"].append(request.headers.get("last-event-id"))
    response = await _open_stream(request)
    for n in range(1, 11):
        message = Message(data=json.dumps({"message": "hello world"}), id=str(n))
        await response.write(message.to_bytes())
        await asyncio.sleep(0)
    await response.write_eof()
    return response


async def index(request: web.Request) -> web.Response:
    return web.Response(text="ok", content_type="text/plain")


async def sse_get(request: web.Request) -> web.StreamResponse:
    return await _push_forever(request, "hello world")


async def sse_post(request: web.Request) -> web.StreamResponse:
    body = await request.text()
    if not body:
        raise web.HTTPBadRequest(reason="Body must be a string")
    return await _push_forever(request, body)


async def sse_send_10_then_close(request: web.Request) -> web.StreamResponse:
    return await _push_ten_then_close(request)


async def sse_invalidate_headers(request: web.Request) -> web.StreamResponse:
    """Each Authorization token is good for exactly one connection."""
    token = request.headers.get("Authorization", "")
    expired = request.app["expired_tokens"]
    if token in expired:
        raise web.HTTPForbidden(reason="Token has expired")
    expired.add(token)
    return await _push_ten_then_close(request)


async def send_500_error(request: web.Request) -> web.Response:
    return web.json_response({"statusCode": 500}, status=500, reason="Internal error")


def create_demo_app() -> web.Application:
    app = web.Application()
    app["expired_tokens"] = set()
    app["last_event_ids"] = []
    app.router.add_get("/", index)
    app.router.add_get("/sse-get", sse_get)
    app.router.add_post("/sse-post", sse_post)
    app.router.add_get("/sse-send-10-then-close", sse_send_10_then_close)
    app.router.add_delete("/sse-invalidate-headers", sse_invalidate_headers)
    app.router.add_post("/send-500-error", send_500_error)
    return app


@pytest.fixture
async def demo_server(aiohttp_server):
    return await aiohttp_server(create_demo_app())
