"""Public types: abort events, fetch request/response descriptors and hooks."""

from __future__ import annotations

import enum
import json
from collections.abc import AsyncIterable, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Union

import httpx

from .cancellation import AbortSignal
from .parse import Message

HTTP_METHODS = ("get", "head", "post", "put", "delete", "connect", "options", "trace", "patch")
HttpMethod = Literal["get", "head", "post", "put", "delete", "connect", "options", "trace", "patch"]

HeaderMap = Mapping[str, Union[str, None]]
HeaderSource = Union[
    HeaderMap,
    Callable[[], HeaderMap],
    Callable[[], Awaitable[HeaderMap]],
]


class AbortEventType(str, enum.Enum):
    MANUAL = "manual"  # controller.abort() was called
    END_OF_STREAM = "end-of-stream"  # clean close, on-error strategy only
    ERROR = "error"  # retries exhausted or timeout


@dataclass(frozen=True)
class AbortEvent:
    type: AbortEventType
    reason: str | None = None


@dataclass
class FetchRequest:
    url: str
    method: str
    headers: httpx.Headers
    body: str | bytes | None = None
    signal: AbortSignal | None = None


@dataclass
class FetchResponse:
    """What a fetch implementation hands back for a received response.

    ``stream`` yields the raw body bytes; ``close`` releases the connection.
    """

    status: int
    reason: str = ""
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    stream: AsyncIterable[bytes] | None = None
    close: Callable[[], Awaitable[None]] | None = None
    raw: Any = None
    _body: bytes | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.headers = httpx.Headers(self.headers)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    async def aread(self) -> bytes:
        """Read the whole body. Only useful for error responses."""
        if self._body is None:
            chunks: list[bytes] = []
            if self.stream is not None:
                async for chunk in self.stream:
                    chunks.append(chunk)
            self._body = b"".join(chunks)
        return self._body

    async def json(self) -> Any:
        return json.loads(await self.aread())

    async def aclose(self) -> None:
        if self.close is not None:
            await self.close()


@dataclass
class FetchContext:
    """Passed to every request/response hook."""

    request: FetchRequest
    response: FetchResponse | None = None
    error: BaseException | None = None


MessageHook = Callable[[Message], Any]
ContextHook = Callable[[FetchContext], Any]


@dataclass(frozen=True)
class EventSourceHooks:
    on_message: MessageHook
    on_request: ContextHook | None = None
    on_request_error: ContextHook | None = None
    on_response: ContextHook | None = None
    on_response_error: ContextHook | None = None
