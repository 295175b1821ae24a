"""Errors reported to response hooks.

Transport failures are whatever the fetch implementation raises (for the
default transport, ``httpx.TransportError``) and are passed through as-is.
"""

from __future__ import annotations

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class EventSourceError(Exception):
    """Base class for errors synthesized by the client."""


class ResponseError(EventSourceError):
    """The server answered, but not with a usable event stream."""

    def __init__(self, status: int, reason: str, message: str | None = None) -> None:
        self.status = status
        self.reason = reason
        super().__init__(message or f"{status} {reason}")


class ContentTypeError(ResponseError):
    """A successful status with a Content-Type other than text/event-stream."""

    def __init__(self, status: int, reason: str, content_type: str | None) -> None:
        self.content_type = content_type
        super().__init__(
            status,
            reason,
            f"Expected server to respond with Content-Type: "
            f"'{EVENT_STREAM_CONTENT_TYPE}'. Got '{content_type}'",
        )


class MissingBodyError(ResponseError):
    """A successful response that carries no body stream."""

    def __init__(self, status: int, reason: str) -> None:
        super().__init__(status, reason, "Expected response body to contain a byte stream")
