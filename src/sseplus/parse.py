"""Incremental SSE line protocol parser.

Turns decoded text into structured messages. The parser keeps no state of
its own: every call returns the unconsumed tail as ``leftover``, and the
caller prepends it to the next chunk.
"""

from __future__ import annotations

import codecs
import math
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from typing import Any

DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class Message:
    """A single Server-Sent Event."""

    data: str
    event: str = DEFAULT_EVENT
    id: str | None = None
    retry: int | None = None

    def to_bytes(self) -> bytes:
        """Serialize back to SSE wire format.

        ``data`` is written as a single ``data:`` line, since a block keeps
        only its last ``data:`` line when parsed.
        """
        if "\n" in self.data or "\r" in self.data:
            raise ValueError("message data must be a single line")
        lines: list[str] = []
        if self.id is not None:
            lines.append(f"id: {self.id}")
        if self.event != DEFAULT_EVENT:
            lines.append(f"event: {self.event}")
        lines.append(f"data: {self.data}")
        if self.retry is not None:
            lines.append(f"retry: {self.retry}")
        lines.append("")  # blank line terminates event
        return ("\n".join(lines) + "\n").encode()


@dataclass
class ParseResult:
    messages: list[Message] = field(default_factory=list)
    leftover: str = ""


def _parse_retry(value: str) -> int | None:
    """Numeric conversion of a stripped ``retry:`` value; an empty value is 0."""
    if not value:
        return 0
    if "_" in value:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return math.floor(number + 0.5)


def parse_line(line: str) -> dict[str, Any]:
    """Parse one field line into the fields it sets.

    Unknown fields, comments and empty lines give an empty dict.
    """
    if line.startswith("data:"):
        return {"data": line[5:].strip()}
    if line.startswith("id:"):
        return {"id": line[3:].strip()}
    if line.startswith("event:"):
        return {"event": line[6:].strip()}
    if line.startswith("retry:"):
        retry = _parse_retry(line[6:].strip())
        if retry is not None:
            return {"retry": retry}
    return {}


def _flush(pending: dict[str, Any]) -> Message | None:
    if "data" not in pending:
        return None
    return Message(
        data=pending["data"],
        event=pending.get("event", DEFAULT_EVENT),
        id=pending.get("id"),
        retry=pending.get("retry"),
    )


def parse_chunk(previous_leftover: str, text: str) -> ParseResult:
    """Parse ``previous_leftover + text`` into complete messages.

    Lines end with ``\\n``, ``\\r\\n`` or a lone ``\\r``; a blank line ends
    the message. Everything after the last complete message comes back
    untouched as ``leftover``.
    """
    source = previous_leftover + text
    result = ParseResult()
    pending: dict[str, Any] = {}
    line_chars: list[str] = []
    previous_char: str | None = None
    swallow_newline = False
    pending_index = 0

    for index, char in enumerate(source):
        if char == "\r":
            end_of_message = previous_char in ("\n", "\r")
            swallow_newline = True
            next_index = index + 2 if source[index + 1 : index + 2] == "\n" else index + 1
        elif char == "\n":
            if swallow_newline:
                # second half of \r\n
                swallow_newline = False
                previous_char = char
                continue
            end_of_message = previous_char == "\n"
            next_index = index + 1
        else:
            swallow_newline = False
            line_chars.append(char)
            previous_char = char
            continue

        pending.update(parse_line("".join(line_chars)))
        line_chars.clear()
        if end_of_message:
            message = _flush(pending)
            if message is not None:
                result.messages.append(message)
            pending = {}
            pending_index = next_index
        previous_char = char

    result.leftover = source[pending_index:]
    return result


class StreamParser:
    """Holds the leftover between calls for callers that want an object."""

    def __init__(self) -> None:
        self.leftover = ""

    def feed(self, text: str) -> list[Message]:
        """Feed a chunk of text, return any complete messages."""
        result = parse_chunk(self.leftover, text)
        self.leftover = result.leftover
        return result.messages


async def decode_stream(
    chunks: AsyncIterable[bytes], encoding: str = "utf-8"
) -> AsyncIterator[str]:
    """Decode a byte stream incrementally.

    A multi-byte character split across chunks is held back until its last
    byte arrives. Invalid bytes become U+FFFD.
    """
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    async for chunk in chunks:
        text = decoder.decode(chunk)
        if text:
            yield text
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail
