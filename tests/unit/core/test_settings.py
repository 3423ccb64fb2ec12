"""
Tests for FetcherSettings and load_from_env.
"""

import os

import pytest
from pydantic import ValidationError

from fetcher.core.backoff import ExponentialBackoff, LinearBackoff, NoBackoff
from fetcher.core.config import ClientConfig
from fetcher.core.exceptions import ConfigurationError
from fetcher.core.logging.config import LogFormat, LogLevel
from fetcher.core.settings import FetcherSettings, load_from_env


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop FETCHER_* variables leaking from the outer environment."""
    for key in list(os.environ):
        if key.startswith("FETCHER_"):
            monkeypatch.delenv(key)


class TestLoadFromEnv:
    """Test load_from_env function."""

    def test_load_with_defaults(self):
        config = load_from_env()

        assert isinstance(config, ClientConfig)
        assert config.base_url is None
        assert config.timeout.as_tuple() == (5.0, 30.0)
        assert config.retry.max_attempts == 1
        assert config.retry.backoff == ExponentialBackoff(min=1.0, max=30.0, jitter=True)
        assert config.rate_limit.enabled is False
        assert config.logging is None

    def test_load_from_environment(self, monkeypatch):
        monkeypatch.setenv("FETCHER_BASE_URL", "https://env.example.com/")
        monkeypatch.setenv("FETCHER_MAX_ATTEMPTS", "4")
        monkeypatch.setenv("FETCHER_RETRY_ON_EOF", "true")
        monkeypatch.setenv("FETCHER_RATE_LIMIT_RATE", "10")
        monkeypatch.setenv("FETCHER_RATE_LIMIT_DURATION", "1")

        config = load_from_env()

        assert config.base_url == "https://env.example.com"
        assert config.retry.max_attempts == 4
        assert config.retry.retry_on_eof is True
        assert config.rate_limit.enabled

    def test_load_from_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "FETCHER_BASE_URL=https://file.example.com\n"
            "FETCHER_TIMEOUT_CONNECT=15\n"
            "FETCHER_BACKOFF=linear\n"
            "FETCHER_BACKOFF_INTERVAL=0.5\n"
            "FETCHER_BACKOFF_JITTER=false\n"
        )

        config = load_from_env(env_file=str(env_file))

        assert config.base_url == "https://file.example.com"
        assert config.timeout.connect == 15
        assert config.retry.backoff == LinearBackoff(interval=0.5, min=1.0, max=30.0)

    def test_environment_beats_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("FETCHER_MAX_ATTEMPTS=2\n")
        monkeypatch.setenv("FETCHER_MAX_ATTEMPTS", "5")

        assert load_from_env(env_file=str(env_file)).retry.max_attempts == 5

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("FETCHER_MAX_ATTEMPTS", "5")

        config = load_from_env(max_attempts=7, backoff="none", backoff_min=0.2)

        assert config.retry.max_attempts == 7
        assert config.retry.backoff == NoBackoff(delay=0.2)

    def test_unknown_override(self):
        with pytest.raises(ConfigurationError, match="Unknown settings: bogus"):
            load_from_env(bogus=1)

    def test_invalid_value(self, monkeypatch):
        monkeypatch.setenv("FETCHER_MAX_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            load_from_env()

    def test_backoff_bounds_checked(self):
        with pytest.raises(ValidationError):
            load_from_env(backoff_min=10, backoff_max=1)


class TestLoggingSettings:
    """LoggingConfig built from FETCHER_LOG_* variables."""

    def test_log_enabled(self, monkeypatch):
        monkeypatch.setenv("FETCHER_LOG_ENABLED", "1")
        monkeypatch.setenv("FETCHER_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("FETCHER_LOG_FORMAT", "json")

        logging_config = load_from_env().logging

        assert logging_config.level == LogLevel.DEBUG
        assert logging_config.format == LogFormat.JSON
        assert logging_config.enable_file is False

    def test_log_file_path_enables_file(self, tmp_path):
        path = str(tmp_path / "logs" / "fetcher.log")

        logging_config = FetcherSettings(log_file_path=path).logging_config()

        assert logging_config.enable_file is True
        assert logging_config.file_path == path
