"""
Иерархия исключений fetcher.

Классификация:
- TemporaryError (retryable=True) - можно ретраить
- FatalError (fatal=True) - НЕ ретраить никогда
- CancelledError - контекст отменён или истёк deadline
"""

import http.client
import ssl
from typing import Iterator, Optional, Set

import requests

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BASE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class FetcherException(Exception):
    """Базовое исключение fetcher."""

    retryable: bool = False
    fatal: bool = False

    def __init__(self, message: str, **kwargs):
        self.message = message
        super().__init__(message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ВРЕМЕННЫЕ ОШИБКИ (retryable=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class TemporaryError(FetcherException):
    """
    Временная ошибка - можно ретраить.

    Примеры: connection reset by peer, broken pipe.
    """
    retryable = True

class BrokenConnectionError(TemporaryError):
    """
    Соединение сброшено удалённой стороной.

    Примеры:
    - Connection reset by peer
    - Broken pipe
    """

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        full_message = message
        if url:
            full_message += f" (url: {url})"
        super().__init__(full_message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ФАТАЛЬНЫЕ ОШИБКИ (fatal=True)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class FatalError(FetcherException):
    """
    Фатальная ошибка - НЕ ретраить.

    Примеры: невалидный запрос, нечитаемый ответ.
    """
    fatal = True

class TransportError(FatalError):
    """
    Ошибка транспорта, не входящая в список retryable.

    Args:
        message: Сообщение
        url: URL запроса
    """

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        full_message = message
        if url:
            full_message += f" (url: {url})"
        super().__init__(full_message)

class UnexpectedEOFError(TransportError):
    """
    Соединение закрыто до получения ответа (EOF).

    Ретраится только если запрос создан с with_retry_on_eof().
    """
    pass

class RequestBuildError(FatalError):
    """Запрос не может быть собран (невалидная опция, payload, URL)."""
    pass

class PayloadError(RequestBuildError):
    """
    Streaming payload (multipart) не удалось сформировать.

    Обнаруживается только после первой попытки, повторять запрос бессмысленно.
    """
    pass

class DecodeError(FatalError):
    """
    Тело ответа не удалось декодировать.

    Примеры:
    - Битый JSON
    - Невалидный XML
    - Запрещённый объект в pickle
    """
    pass

class UndeterminableDecoderError(DecodeError):
    """
    Декодер не выбран явно и не определяется по Content-Type.

    Args:
        content_type: Значение Content-Type ответа
    """

    def __init__(self, content_type: Optional[str]):
        self.content_type = content_type
        super().__init__(
            f"cannot determine decoder for content type {content_type!r}"
        )

class BodyConsumedError(DecodeError):
    """Тело ответа уже прочитано и копия не сохранялась."""

    def __init__(self, message: str = "response body already consumed"):
        super().__init__(message)

class ConfigurationError(FetcherException):
    """Ошибка конфигурации."""
    fatal = True

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ОТМЕНА
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class CancelledError(FetcherException):
    """
    Контекст отменён.

    Отдельная ветка иерархии, чтобы отличать "сдались по deadline"
    от "сервер отказал".
    """

    def __init__(self, message: str = "context cancelled"):
        super().__init__(message)

class DeadlineExceededError(CancelledError):
    """Истёк deadline контекста."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# УТИЛИТЫ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_RESET_MARKERS = ("connection reset by peer", "broken pipe")

_EOF_TYPES = (
    EOFError,
    http.client.RemoteDisconnected,
    http.client.IncompleteRead,
    ssl.SSLEOFError,
)


def _iter_causes(exc: BaseException) -> Iterator[BaseException]:
    """
    Обойти цепочку причин исключения.

    requests заворачивает urllib3, а тот заворачивает socket/http.client,
    поэтому смотрим __cause__, __context__, .reason и exception-аргументы.
    """
    seen: Set[int] = set()
    stack = [exc]
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        stack.append(current.__cause__)
        stack.append(current.__context__)
        reason = getattr(current, 'reason', None)
        if isinstance(reason, BaseException):
            stack.append(reason)
        for arg in getattr(current, 'args', ()):
            if isinstance(arg, BaseException):
                stack.append(arg)


def is_eof_error(exc: BaseException) -> bool:
    """Есть ли в цепочке EOF (соединение закрыто без ответа)."""
    return any(isinstance(cause, _EOF_TYPES) for cause in _iter_causes(exc))


def is_connection_reset(exc: BaseException) -> bool:
    """Есть ли в цепочке reset-by-peer / broken pipe."""
    for cause in _iter_causes(exc):
        if isinstance(cause, http.client.RemoteDisconnected):
            # RemoteDisconnected наследует ConnectionResetError, но это EOF
            continue
        if isinstance(cause, (ConnectionResetError, BrokenPipeError)):
            return True
        if any(marker in str(cause).lower() for marker in _RESET_MARKERS):
            return True
    return False


def classify_transport_error(
    exc: Exception,
    url: str
) -> FetcherException:
    """
    Конвертировать исключение транспорта в наше исключение.

    Args:
        exc: Исключение из requests (или из кастомного транспорта)
        url: URL запроса

    Returns:
        Наше исключение с правильной классификацией

    Examples:
        >>> exc = requests.exceptions.ConnectionError(ConnectionResetError(104, "reset"))
        >>> our_exc = classify_transport_error(exc, "https://example.com")
        >>> assert isinstance(our_exc, BrokenConnectionError)
        >>> assert our_exc.retryable == True
    """
    if isinstance(exc, FetcherException):
        return exc

    # EOF проверяем первым: RemoteDisconnected - подкласс ConnectionResetError
    if is_eof_error(exc):
        return UnexpectedEOFError(f"Connection closed before response: {exc}", url)

    if is_connection_reset(exc):
        return BrokenConnectionError(f"Connection broken: {exc}", url)

    if isinstance(exc, requests.exceptions.InvalidURL):
        return RequestBuildError(f"Invalid URL: {exc}")

    if isinstance(exc, requests.exceptions.Timeout):
        return TransportError(f"Request timeout: {exc}", url)

    return TransportError(f"Transport error: {exc}", url)
