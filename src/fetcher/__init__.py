"""fetcher - HTTP client with retries, backoff, rate limiting and managed response bodies."""

import logging
from importlib.metadata import PackageNotFoundError, version

from .core.backoff import ExponentialBackoff, LinearBackoff, NoBackoff
from .core.client import Client
from .core.config import (
    ClientConfig,
    ConnectionPoolConfig,
    RateLimitConfig,
    RetryConfig,
    SecurityConfig,
    TimeoutConfig,
)
from .core.context import Context, background, with_cancel
from .core.decode import (
    with_copied_body,
    with_custom_func,
    with_json_body,
    with_pickle_body,
    with_xml_body,
)
from .core.exceptions import (
    BodyConsumedError,
    BrokenConnectionError,
    CancelledError,
    ConfigurationError,
    DeadlineExceededError,
    DecodeError,
    FetcherException,
    PayloadError,
    RequestBuildError,
    TransportError,
    UndeterminableDecoderError,
    UnexpectedEOFError,
)
from .core.logging import LoggingConfig
from .core.request import (
    Request,
    with_accept_json_header,
    with_after_do_func,
    with_base_url,
    with_basic_auth,
    with_bytes_payload,
    with_cookie,
    with_cookies,
    with_deadline,
    with_default_backoff,
    with_exponential_backoff,
    with_exponential_jitter_backoff,
    with_filepath_multipart_payload,
    with_header,
    with_json_payload,
    with_linear_backoff,
    with_linear_jitter_backoff,
    with_logger,
    with_max_attempts,
    with_multipart_field,
    with_no_backoff,
    with_param,
    with_pickle_payload,
    with_reader_multipart_payload,
    with_reader_payload,
    with_retry_on_eof,
    with_timeout,
    with_urlencoded_payload,
)
from .core.response import Response
from .core.settings import load_from_env

# Library logs go nowhere unless the application configures 'fetcher'
logging.getLogger('fetcher').addHandler(logging.NullHandler())

try:
    __version__ = version("fetcher-core")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    # Core
    "Client",
    "Request",
    "Response",
    "Context",
    "background",
    "with_cancel",
    # Config
    "ClientConfig",
    "TimeoutConfig",
    "RetryConfig",
    "RateLimitConfig",
    "ConnectionPoolConfig",
    "SecurityConfig",
    "LoggingConfig",
    "load_from_env",
    # Backoff
    "NoBackoff",
    "LinearBackoff",
    "ExponentialBackoff",
    # Request options
    "with_base_url",
    "with_header",
    "with_accept_json_header",
    "with_param",
    "with_cookie",
    "with_cookies",
    "with_basic_auth",
    "with_json_payload",
    "with_pickle_payload",
    "with_urlencoded_payload",
    "with_bytes_payload",
    "with_reader_payload",
    "with_multipart_field",
    "with_reader_multipart_payload",
    "with_filepath_multipart_payload",
    "with_max_attempts",
    "with_retry_on_eof",
    "with_after_do_func",
    "with_default_backoff",
    "with_no_backoff",
    "with_linear_backoff",
    "with_linear_jitter_backoff",
    "with_exponential_backoff",
    "with_exponential_jitter_backoff",
    "with_timeout",
    "with_deadline",
    "with_logger",
    # Decode options
    "with_json_body",
    "with_pickle_body",
    "with_xml_body",
    "with_custom_func",
    "with_copied_body",
    # Exceptions
    "FetcherException",
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
]
