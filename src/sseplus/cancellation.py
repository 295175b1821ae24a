"""Per-attempt cancellation signal.

A new AbortSignal is created for every connection attempt. Work started by
an attempt holds on to that attempt's signal and checks it before every
observable side effect, so a superseded attempt goes quiet even if its
task has not been torn down yet.
"""

from __future__ import annotations

import asyncio


class AbortSignal:
    def __init__(self) -> None:
        self._aborted = asyncio.Event()
        self.reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def abort(self, reason: str | None = None) -> None:
        """Abort the signal; only the first reason is kept."""
        if self._aborted.is_set():
            return
        self.reason = reason
        self._aborted.set()

    async def wait(self) -> str | None:
        """Block until aborted, returning the reason."""
        await self._aborted.wait()
        return self.reason

    def __repr__(self) -> str:
        return f"AbortSignal(aborted={self.aborted}, reason={self.reason!r})"
