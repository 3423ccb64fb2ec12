"""Core fetcher модули."""

from .backoff import (
    DEFAULT_BACKOFF,
    BackoffStrategy,
    ExponentialBackoff,
    LinearBackoff,
    NoBackoff,
)
from .buffer_pool import BufferPool, get_default_pool
from .client import Client
from .config import (
    ClientConfig,
    ConnectionPoolConfig,
    RateLimitConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from .context import Context, background, with_cancel
from .exceptions import (
    BodyConsumedError,
    BrokenConnectionError,
    CancelledError,
    ConfigurationError,
    DeadlineExceededError,
    DecodeError,
    FatalError,
    FetcherException,
    PayloadError,
    RequestBuildError,
    TemporaryError,
    TransportError,
    UndeterminableDecoderError,
    UnexpectedEOFError,
    classify_transport_error,
)
from .rate_limit import RateLimiter
from .request import MultipartStream, Request
from .response import Response
from .retry_engine import RetryEngine
from .session_manager import SessionManager
from .settings import FetcherSettings, load_from_env

__all__ = [
    # Client
    "Client",
    "Request",
    "Response",
    "MultipartStream",
    "RetryEngine",
    "SessionManager",
    # Config
    "ClientConfig",
    "TimeoutConfig",
    "RetryConfig",
    "RateLimitConfig",
    "ConnectionPoolConfig",
    "SecurityConfig",
    "FetcherSettings",
    "load_from_env",
    # Backoff
    "BackoffStrategy",
    "NoBackoff",
    "LinearBackoff",
    "ExponentialBackoff",
    "DEFAULT_BACKOFF",
    # Context
    "Context",
    "background",
    "with_cancel",
    # Resources
    "RateLimiter",
    "BufferPool",
    "get_default_pool",
    # Exceptions
    "FetcherException",
    "TemporaryError",
    "FatalError",
    "BrokenConnectionError",
    "TransportError",
    "UnexpectedEOFError",
    "RequestBuildError",
    "PayloadError",
    "DecodeError",
    "UndeterminableDecoderError",
    "BodyConsumedError",
    "ConfigurationError",
    "CancelledError",
    "DeadlineExceededError",
    "classify_transport_error",
]
