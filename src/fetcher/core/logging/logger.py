"""
Structured logger used by fetcher clients and requests.
"""

import logging
from typing import Any, Dict, Optional

from .config import LoggingConfig, LogLevel
from .filters import CorrelationIdFilter, ExtraFieldsFilter
from .formatters import RESERVED_FIELDS, get_formatter
from .handlers import create_console_handler, create_file_handler
from ...utils.sanitizer import mask_sensitive_data, mask_url


class FetcherLogger:
    """
    Logger taking structured fields as keyword arguments.

    Fields are masked before they reach any handler. Built either from a
    LoggingConfig (owns its handlers) or around an existing logging.Logger
    (left as configured by the application).

    Example:
        >>> logger = FetcherLogger(LoggingConfig.create(level="DEBUG", format="json"))
        >>> logger.info("Request completed", method="GET", status_code=200)

        >>> app_logger = FetcherLogger(logger=logging.getLogger("myapp.http"))
    """

    def __init__(
        self,
        config: Optional[LoggingConfig] = None,
        name: str = "fetcher",
        logger: Optional[logging.Logger] = None
    ):
        """
        Args:
            config: Logging configuration (defaults if None and no logger given)
            name: Logger name
            logger: Existing logger to wrap; its handlers are left alone
        """
        self._closed = False

        if logger is not None:
            self.config = config
            self.name = logger.name
            self._logger = logger
            self._owns_handlers = False
            return

        self.config = config or LoggingConfig()
        self.name = name
        self._owns_handlers = True

        self._logger = logging.getLogger(name)
        self._logger.setLevel(self._get_level(self.config.level))
        self._logger.propagate = False
        self._logger.handlers.clear()

        filters = []
        if self.config.enable_correlation_id:
            filters.append(CorrelationIdFilter())
        if self.config.extra_fields:
            filters.append(ExtraFieldsFilter(self.config.extra_fields))

        formatter = get_formatter(self.config.format.value)
        level = self._get_level(self.config.level)

        if self.config.enable_console:
            self._logger.addHandler(create_console_handler(level, formatter, filters))

        if self.config.enable_file and self.config.file_path:
            self._logger.addHandler(create_file_handler(
                file_path=self.config.file_path,
                level=level,
                formatter=formatter,
                max_bytes=self.config.max_bytes,
                backup_count=self.config.backup_count,
                filters=filters
            ))

    @staticmethod
    def _get_level(level: LogLevel) -> int:
        return getattr(logging, level.value)

    @property
    def logger(self) -> logging.Logger:
        """Underlying logging.Logger."""
        return self._logger

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    @staticmethod
    def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = mask_sensitive_data(fields)
        if isinstance(sanitized.get('url'), str):
            sanitized['url'] = mask_url(sanitized['url'])
        # LogRecord refuses extra keys that shadow its own attributes
        return {
            (f"{key}_" if key in RESERVED_FIELDS else key): value
            for key, value in sanitized.items()
        }

    def log(self, level: int, message: str, exc_info: Any = None, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, message, exc_info=exc_info, extra=self._sanitize(kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        """
        Example:
            >>> logger.debug("Request attempt", attempt=2, url="https://api.com")
        """
        self.log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self.log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at ERROR with the current exception's traceback."""
        self.log(logging.ERROR, message, exc_info=True, **kwargs)

    def close(self) -> None:
        """
        Flush and close owned handlers. Idempotent.

        A wrapped application logger is never touched.
        """
        if self._closed:
            return
        self._closed = True

        if not self._owns_handlers:
            return

        for handler in self._logger.handlers[:]:
            try:
                handler.flush()
                handler.close()
            except (OSError, ValueError):
                pass
            self._logger.removeHandler(handler)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"FetcherLogger(name={self.name!r})"


_default_logger: Optional[FetcherLogger] = None


def get_logger(config: Optional[LoggingConfig] = None) -> FetcherLogger:
    """
    Process-wide logger, created on first call.

    Args:
        config: Used only when the logger is created
    """
    global _default_logger

    if _default_logger is None:
        _default_logger = FetcherLogger(config)

    return _default_logger


def configure_logging(config: LoggingConfig) -> FetcherLogger:
    """Replace the process-wide logger with a newly configured one."""
    global _default_logger

    if _default_logger is not None:
        _default_logger.close()
    _default_logger = FetcherLogger(config)
    return _default_logger
