"""Tests for ClientSettings."""

import pytest
from pydantic import ValidationError

from sseplus.config import ClientSettings
from sseplus.retry import RetryStrategy


class TestClientSettings:
    def test_defaults(self):
        settings = ClientSettings()
        assert settings.method == "get"
        assert settings.max_retry_count is None
        assert settings.max_retry_interval_ms == 30_000
        assert settings.retry_strategy is RetryStrategy.ALWAYS
        assert settings.timeout_ms is None
        assert settings.log_level == "INFO"
        assert settings.log_dir is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SSEPLUS_MAX_RETRY_COUNT", "4")
        monkeypatch.setenv("SSEPLUS_RETRY_STRATEGY", "on-error")
        monkeypatch.setenv("SSEPLUS_TIMEOUT_MS", "1500")
        settings = ClientSettings()
        assert settings.max_retry_count == 4
        assert settings.retry_strategy is RetryStrategy.ON_ERROR
        assert settings.timeout_ms == 1500

    def test_kwargs_override_env(self, monkeypatch):
        monkeypatch.setenv("SSEPLUS_METHOD", "post")
        assert ClientSettings(method="put").method == "put"

    def test_method_lowercased(self):
        assert ClientSettings(method="DELETE").method == "delete"

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError):
            ClientSettings(method="fetch")

    @pytest.mark.parametrize(
        "field",
        ["max_retry_count", "max_retry_interval_ms", "timeout_ms"],
    )
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            ClientSettings(**{field: 0})

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValidationError):
            ClientSettings(retry_strategy="sometimes")
