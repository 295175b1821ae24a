"""Per-subscription connection state: retry accounting, backoff and resumption."""

from __future__ import annotations

import enum
from dataclasses import dataclass

# First backoff delay; doubled on every consecutive failure.
BASE_RETRY_INTERVAL_MS = 2
DEFAULT_MAX_RETRY_INTERVAL_MS = 30_000


class RetryStrategy(str, enum.Enum):
    ALWAYS = "always"  # reconnect after a clean end of stream too
    ON_ERROR = "on-error"


@dataclass
class ConnectionState:
    """Mutable state owned by exactly one subscription."""

    max_retry_count: int | None = None
    max_retry_interval_ms: int = DEFAULT_MAX_RETRY_INTERVAL_MS
    retry_strategy: RetryStrategy = RetryStrategy.ALWAYS
    last_event_id: str | None = None
    retry_count: int = 0
    retry_interval_ms: int = 0

    @property
    def retries_exhausted(self) -> bool:
        return self.max_retry_count is not None and self.retry_count >= self.max_retry_count

    def register_failure(self) -> bool:
        """Count a failed (or finished) attempt.

        Returns False once ``max_retry_count`` attempts have been made.
        """
        self.retry_count += 1
        return not self.retries_exhausted

    def next_retry_interval_ms(self) -> int:
        """Advance and return the backoff delay for the next attempt."""
        if self.retry_interval_ms <= 0:
            self.retry_interval_ms = BASE_RETRY_INTERVAL_MS
        else:
            self.retry_interval_ms *= 2
        self.retry_interval_ms = min(self.retry_interval_ms, self.max_retry_interval_ms)
        return self.retry_interval_ms

    def reset_backoff(self) -> None:
        """Called once a stream is successfully opened."""
        self.retry_count = 0
        self.retry_interval_ms = 0

    def record_event_id(self, event_id: str | None) -> None:
        """Remember the id for resumption; empty ids never overwrite it."""
        if event_id:
            self.last_event_id = event_id
