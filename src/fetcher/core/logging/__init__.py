"""
Logging system for fetcher.

Structured logging with JSON/text/colored formats, console and rotating file
handlers, and a per-thread correlation id.

Example:
    >>> from fetcher.core.logging import LoggingConfig
    >>> from fetcher import Client, ClientConfig
    >>>
    >>> config = ClientConfig.create(
    ...     base_url="https://api.example.com",
    ...     logging=LoggingConfig.create(level="DEBUG", format="json"),
    ... )
    >>> client = Client(config=config)
"""

from .config import LogFormat, LoggingConfig, LogLevel
from .filters import (
    CorrelationIdFilter,
    ExtraFieldsFilter,
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from .formatters import ColoredFormatter, JSONFormatter, TextFormatter, get_formatter
from .handlers import create_console_handler, create_file_handler
from .logger import FetcherLogger, configure_logging, get_logger

__all__ = [
    # Config
    "LoggingConfig",
    "LogLevel",
    "LogFormat",
    # Logger
    "FetcherLogger",
    "get_logger",
    "configure_logging",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    "ColoredFormatter",
    "get_formatter",
    # Filters
    "CorrelationIdFilter",
    "ExtraFieldsFilter",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    # Handlers
    "create_console_handler",
    "create_file_handler",
]
