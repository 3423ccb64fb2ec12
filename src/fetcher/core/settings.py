"""
Configuration loader from environment variables and .env files.

Example .env file:
    FETCHER_BASE_URL=https://api.example.com
    FETCHER_TIMEOUT_READ=10
    FETCHER_MAX_ATTEMPTS=3
    FETCHER_BACKOFF=linear
    FETCHER_BACKOFF_INTERVAL=0.5
    FETCHER_RATE_LIMIT_RATE=10
    FETCHER_RATE_LIMIT_DURATION=1
    FETCHER_LOG_LEVEL=DEBUG
"""

from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .backoff import BackoffStrategy, ExponentialBackoff, LinearBackoff, NoBackoff
from .config import (
    ClientConfig,
    ConnectionPoolConfig,
    RateLimitConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from .exceptions import ConfigurationError
from .logging.config import LoggingConfig


class FetcherSettings(BaseSettings):
    """
    Flat view of ClientConfig read from FETCHER_* variables.

    Priority: explicit init kwargs, environment, .env file, defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix='FETCHER_',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    base_url: str = Field(default="")

    # Timeouts
    timeout_connect: float = Field(default=5.0, gt=0)
    timeout_read: float = Field(default=30.0, gt=0)

    # Connection pool
    pool_connections: int = Field(default=10, ge=1)
    pool_maxsize: int = Field(default=10, ge=1)
    pool_max_redirects: int = Field(default=30, ge=0)

    # Security
    verify_ssl: bool = True
    allow_redirects: bool = True

    # Retry
    max_attempts: int = Field(default=1, ge=1)
    retry_on_eof: bool = False
    backoff: Literal["none", "linear", "exponential"] = "exponential"
    backoff_min: float = Field(default=1.0, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    backoff_interval: float = Field(default=1.0, ge=0)
    backoff_jitter: bool = True

    # Rate limit
    rate_limit_rate: int = Field(default=0, ge=0)
    rate_limit_duration: float = Field(default=0.0, ge=0)

    # Logging (None of these set - no LoggingConfig)
    log_enabled: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text", "colored"] = "text"
    log_console: bool = True
    log_file_path: Optional[str] = None

    @model_validator(mode='after')
    def _check_backoff_bounds(self) -> 'FetcherSettings':
        if self.backoff_max < self.backoff_min:
            raise ValueError(
                f"backoff_max ({self.backoff_max}) must be >= backoff_min ({self.backoff_min})"
            )
        return self

    def backoff_strategy(self) -> BackoffStrategy:
        if self.backoff == "none":
            return NoBackoff(delay=self.backoff_min)
        if self.backoff == "linear":
            return LinearBackoff(
                interval=self.backoff_interval,
                min=self.backoff_min,
                max=self.backoff_max,
                jitter=self.backoff_jitter,
            )
        return ExponentialBackoff(
            min=self.backoff_min,
            max=self.backoff_max,
            jitter=self.backoff_jitter,
        )

    def logging_config(self) -> Optional[LoggingConfig]:
        if not self.log_enabled and not self.log_file_path:
            return None
        return LoggingConfig.create(
            level=self.log_level,
            format=self.log_format,
            enable_console=self.log_console,
            enable_file=bool(self.log_file_path),
            file_path=self.log_file_path,
        )

    def to_client_config(self) -> ClientConfig:
        return ClientConfig(
            base_url=self.base_url or None,
            timeout=TimeoutConfig(connect=self.timeout_connect, read=self.timeout_read),
            retry=RetryConfig(
                max_attempts=self.max_attempts,
                backoff=self.backoff_strategy(),
                retry_on_eof=self.retry_on_eof,
            ),
            rate_limit=RateLimitConfig(rate=self.rate_limit_rate, duration=self.rate_limit_duration),
            pool=ConnectionPoolConfig(
                pool_connections=self.pool_connections,
                pool_maxsize=self.pool_maxsize,
                max_redirects=self.pool_max_redirects,
            ),
            security=SecurityConfig(
                verify_ssl=self.verify_ssl,
                allow_redirects=self.allow_redirects,
            ),
            logging=self.logging_config(),
        )


def load_from_env(env_file: Optional[str] = None, **overrides) -> ClientConfig:
    """
    Load ClientConfig from FETCHER_* environment variables.

    Priority (highest to lowest):
    1. **overrides - FetcherSettings field names
    2. Environment variables (FETCHER_*)
    3. env_file
    4. Defaults

    Raises:
        ConfigurationError: unknown override name
        pydantic.ValidationError: invalid value

    Example:
        >>> config = load_from_env(".env", max_attempts=5)
    """
    unknown = set(overrides) - set(FetcherSettings.model_fields)
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")

    settings = FetcherSettings(_env_file=env_file, **overrides)
    return settings.to_client_config()
