"""
Конфигурация клиента fetcher.

Все конфиги immutable (frozen dataclasses): один конфиг безопасно
разделяется между потоками и клиентами.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Tuple, Union

from .backoff import DEFAULT_BACKOFF, BackoffStrategy

if TYPE_CHECKING:
    from .logging import LoggingConfig

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TIMEOUT CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class TimeoutConfig:
    """
    Таймауты одной попытки.

    Args:
        connect: Таймаут подключения (сек)
        read: Таймаут чтения данных (сек)

    Examples:
        >>> TimeoutConfig(connect=5, read=30)
    """
    connect: float = 5.0
    read: float = 30.0

    def __post_init__(self):
        """Валидация."""
        if self.connect <= 0:
            raise ValueError("connect timeout must be positive")
        if self.read <= 0:
            raise ValueError("read timeout must be positive")

    def as_tuple(self) -> Tuple[float, float]:
        """Вернуть как (connect, read) для requests."""
        return (self.connect, self.read)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RETRY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RetryConfig:
    """
    Настройки повторов по умолчанию для запросов клиента.

    Опции запроса (with_max_attempts, with_*_backoff, with_retry_on_eof)
    переопределяют эти значения.

    Args:
        max_attempts: Максимум попыток, включая первую
        backoff: Стратегия паузы между попытками
        retry_on_eof: Ретраить EOF ошибки транспорта

    Examples:
        >>> RetryConfig(max_attempts=3)
        >>> RetryConfig(max_attempts=5, backoff=LinearBackoff(1, 1, 10))
    """
    max_attempts: int = 1
    backoff: BackoffStrategy = DEFAULT_BACKOFF
    retry_on_eof: bool = False

    def __post_init__(self):
        """Валидация."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not isinstance(self.backoff, BackoffStrategy):
            raise ValueError("backoff must be a BackoffStrategy")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RATE LIMIT CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RateLimitConfig:
    """
    Лимит частоты вызовов execute() одного клиента.

    Args:
        rate: Вызовов за duration (0 - без ограничения)
        duration: Окно (сек)

    Examples:
        >>> RateLimitConfig(rate=10, duration=1.0)  # 10 в секунду
    """
    rate: int = 0
    duration: float = 0.0

    def __post_init__(self):
        """Валидация."""
        if self.rate < 0:
            raise ValueError("rate must be non-negative")
        if self.duration < 0:
            raise ValueError("duration must be non-negative")

    @property
    def enabled(self) -> bool:
        return self.rate > 0 and self.duration > 0

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CONNECTION POOL CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class ConnectionPoolConfig:
    """
    Конфигурация connection pool.

    Args:
        pool_connections: Количество connection pools для кеширования
        pool_maxsize: Максимум соединений в пуле
        pool_block: Блокировать при достижении лимита
        max_redirects: Максимум редиректов
    """
    pool_connections: int = 10
    pool_maxsize: int = 10
    pool_block: bool = False
    max_redirects: int = 30

    def __post_init__(self):
        """Валидация."""
        if self.pool_connections <= 0:
            raise ValueError("pool_connections must be positive")
        if self.pool_maxsize <= 0:
            raise ValueError("pool_maxsize must be positive")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be non-negative")

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SECURITY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class SecurityConfig:
    """
    Флаги транспорта.

    Args:
        verify_ssl: Проверять SSL сертификаты
        allow_redirects: Следовать редиректам
    """
    verify_ssl: bool = True
    allow_redirects: bool = True

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _timeout_config(timeout: Union[float, Tuple[float, float], TimeoutConfig]) -> TimeoutConfig:
    if isinstance(timeout, TimeoutConfig):
        return timeout
    if isinstance(timeout, tuple):
        return TimeoutConfig(connect=timeout[0], read=timeout[1])
    return TimeoutConfig(read=timeout)


@dataclass(frozen=True)
class ClientConfig:
    """
    Главная конфигурация Client.

    Args:
        base_url: Базовый URL для относительных путей
        headers: Заголовки для всех запросов
        timeout: Таймауты одной попытки
        retry: Повторы по умолчанию
        rate_limit: Лимит частоты
        pool: Connection pool
        security: SSL и редиректы
        logging: Конфигурация логирования (None - логгер модуля без хендлеров)

    Examples:
        >>> config = ClientConfig(base_url="https://api.example.com")
        >>> config = ClientConfig.create(timeout=60, max_attempts=3)
    """
    base_url: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    pool: ConnectionPoolConfig = field(default_factory=ConnectionPoolConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    logging: Optional['LoggingConfig'] = None

    def __post_init__(self):
        """Заморозить headers и нормализовать base_url."""
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, 'headers', MappingProxyType(dict(self.headers or {})))

        if self.base_url:
            normalized = self.base_url.rstrip('/')
            if normalized != self.base_url:
                object.__setattr__(self, 'base_url', normalized)

    @classmethod
    def create(
        cls,
        base_url: Optional[str] = None,
        timeout: Union[float, Tuple[float, float], TimeoutConfig] = 30,
        max_attempts: int = 1,
        backoff: BackoffStrategy = DEFAULT_BACKOFF,
        retry_on_eof: bool = False,
        rate: int = 0,
        rate_duration: float = 0.0,
        verify_ssl: bool = True,
        allow_redirects: bool = True,
        headers: Optional[Dict[str, str]] = None,
        pool_connections: Optional[int] = None,
        pool_maxsize: Optional[int] = None,
        pool_block: Optional[bool] = None,
        max_redirects: Optional[int] = None,
        logging: Optional['LoggingConfig'] = None,
    ) -> 'ClientConfig':
        """
        Удобный конструктор конфигурации.

        Args:
            base_url: Базовый URL
            timeout: Таймаут чтения, (connect, read) или TimeoutConfig
            max_attempts: Максимум попыток
            backoff: Стратегия паузы
            retry_on_eof: Ретраить EOF
            rate: Вызовов за rate_duration (0 - без лимита)
            rate_duration: Окно лимита (сек)
            verify_ssl: Проверять SSL
            allow_redirects: Следовать редиректам
            headers: Заголовки
            pool_connections, pool_maxsize, pool_block, max_redirects: Connection pool
            logging: Конфигурация логирования

        Examples:
            >>> config = ClientConfig.create(timeout=(3, 60), max_attempts=3)
        """
        pool_kwargs = {
            key: value for key, value in (
                ('pool_connections', pool_connections),
                ('pool_maxsize', pool_maxsize),
                ('pool_block', pool_block),
                ('max_redirects', max_redirects),
            ) if value is not None
        }

        return cls(
            base_url=base_url,
            headers=headers or {},
            timeout=_timeout_config(timeout),
            retry=RetryConfig(max_attempts=max_attempts, backoff=backoff, retry_on_eof=retry_on_eof),
            rate_limit=RateLimitConfig(rate=rate, duration=rate_duration),
            pool=ConnectionPoolConfig(**pool_kwargs),
            security=SecurityConfig(verify_ssl=verify_ssl, allow_redirects=allow_redirects),
            logging=logging,
        )

    def with_timeout(self, timeout: Union[float, Tuple[float, float], TimeoutConfig]) -> 'ClientConfig':
        """
        Новый конфиг с другим timeout.

        Example:
            >>> new_config = config.with_timeout((3, 60))
        """
        return replace(self, timeout=_timeout_config(timeout))

    def with_retries(self, max_attempts: int, backoff: Optional[BackoffStrategy] = None) -> 'ClientConfig':
        """
        Новый конфиг с другим числом попыток (и, опционально, backoff).

        Example:
            >>> new_config = config.with_retries(5)
        """
        return replace(self, retry=replace(
            self.retry,
            max_attempts=max_attempts,
            backoff=backoff or self.retry.backoff,
        ))

    def with_headers(self, headers: Dict[str, str]) -> 'ClientConfig':
        """
        Новый конфиг с дополнительными заголовками.

        Example:
            >>> new_config = config.with_headers({"X-API-Key": "secret"})
        """
        merged = dict(self.headers)
        merged.update(headers)
        return replace(self, headers=merged)

    def with_rate_limit(self, rate: int, duration: float) -> 'ClientConfig':
        """
        Новый конфиг с другим лимитом частоты.

        Example:
            >>> new_config = config.with_rate_limit(10, 1.0)
        """
        return replace(self, rate_limit=RateLimitConfig(rate=rate, duration=duration))
