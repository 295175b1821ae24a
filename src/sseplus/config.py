"""Client configuration via environment variables (SSEPLUS_ prefix) or defaults."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .retry import DEFAULT_MAX_RETRY_INTERVAL_MS, RetryStrategy
from .types import HttpMethod


class ClientSettings(BaseSettings):
    method: HttpMethod = "get"
    max_retry_count: int | None = Field(default=None, ge=1)  # None = retry forever
    max_retry_interval_ms: int = Field(default=DEFAULT_MAX_RETRY_INTERVAL_MS, ge=1)
    retry_strategy: RetryStrategy = RetryStrategy.ALWAYS
    timeout_ms: int | None = Field(default=None, ge=1)  # time allowed for the first response
    log_level: str = "INFO"
    log_dir: str | None = None

    model_config = {"env_prefix": "SSEPLUS_"}

    @field_validator("method", mode="before")
    @classmethod
    def _lowercase_method(cls, value: object) -> object:
        if isinstance(value, str):
            return value.lower()
        return value
