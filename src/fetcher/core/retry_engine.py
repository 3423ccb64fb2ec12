"""
Retry engine: runs the attempt sequence of one request.

Политика повторов (строгая):
- статус < 500 - успех, независимо от номера попытки
- статус >= 500 - ретрай
- connection reset / broken pipe - ретрай
- EOF - ретрай только с with_retry_on_eof()
- всё остальное - ошибка сразу
"""

import http.client
from typing import Callable, Optional, Tuple

import requests

from .context import Context
from .exceptions import FetcherException, UnexpectedEOFError, classify_transport_error
from .request import Request

# (prepared request, (connect, read) timeout) -> response
Transport = Callable[[requests.PreparedRequest, Tuple[float, float]], requests.Response]

# urllib3 refuses a zero timeout
MIN_ATTEMPT_TIMEOUT = 0.001

_TRANSPORT_ERRORS = (requests.exceptions.RequestException, OSError, http.client.HTTPException)


class RetryEngine:
    """
    Выполняет попытки запроса с backoff между ними.

    Транспорт - любой callable вида transport(prepared, timeout) -> Response;
    Client передаёт свой _send. Ожидание между попытками прерывается
    контекстом.

    Examples:
        >>> engine = RetryEngine(client._send)
        >>> http_response = engine.execute(request, ctx, (5, 30))
    """

    def __init__(self, transport: Transport):
        """
        Args:
            transport: Одна блокирующая попытка
        """
        self._transport = transport

    @staticmethod
    def is_retryable(error: FetcherException, request: Request) -> bool:
        """
        Решить, можно ли повторить после ошибки транспорта.

        Args:
            error: Классифицированная ошибка
            request: Запрос (для опции retry_on_eof)
        """
        if isinstance(error, UnexpectedEOFError):
            return request.retry_on_eof
        return error.retryable

    @staticmethod
    def attempt_timeout(ctx: Context, timeout: Tuple[float, float]) -> Tuple[float, float]:
        """Per-attempt (connect, read) timeout, capped by the context deadline."""
        remaining = ctx.remaining()
        if remaining is None:
            return timeout
        limit = max(remaining, MIN_ATTEMPT_TIMEOUT)
        connect, read = timeout
        return (min(connect, limit), min(read, limit))

    def execute(
        self,
        request: Request,
        ctx: Context,
        timeout: Tuple[float, float]
    ) -> requests.Response:
        """
        Выполнить запрос с повторами.

        Args:
            request: Подготовленный запрос (request.prepared)
            ctx: Контекст всей последовательности попыток
            timeout: (connect, read) для одной попытки

        Returns:
            Ответ: статус < 500, либо последний 5xx после исчерпания попыток

        Raises:
            CancelledError: контекст завершился до/между/во время попыток
            FetcherException: неретраибельная ошибка, либо последняя ошибка
                после исчерпания попыток
            PayloadError: streaming payload не сформировался
        """
        ctx.raise_if_done()

        max_attempts = request.max_attempts
        if max_attempts > 1 and not request.replayable:
            request.log_debug(
                "Streaming payload cannot be re-sent, limiting to one attempt",
                max_attempts=max_attempts,
            )
            max_attempts = 1

        attempt = 0
        while True:
            attempt += 1
            ctx.raise_if_done()
            request.log_debug("Request attempt", attempt=attempt, url=request.url)

            response: Optional[requests.Response] = None
            error: Optional[FetcherException] = None

            try:
                response = self._transport(request.prepared, self.attempt_timeout(ctx, timeout))
            except _TRANSPORT_ERRORS as exc:
                if ctx.done():
                    raise ctx.error() from exc

                error = classify_transport_error(exc, request.url)
                error.__cause__ = exc

                if not self.is_retryable(error, request):
                    request.log_error(
                        "Non-retryable transport error",
                        attempt=attempt,
                        error=str(error),
                        error_type=type(error).__name__,
                        request=str(request),
                    )
                    raise error from exc

                request.log_warning(
                    "Retryable transport error",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(error),
                    error_type=type(error).__name__,
                )

            if attempt == 1:
                payload_error = request.payload_error()
                if payload_error is not None:
                    if response is not None:
                        response.close()
                    raise payload_error

            if response is not None and response.status_code < 500:
                request.log_debug(
                    "Status code < 500, exiting retry loop",
                    status_code=response.status_code,
                    attempt=attempt,
                )
                return response

            if attempt >= max_attempts:
                request.log_debug("Max attempts reached, exiting retry loop", max_attempts=max_attempts)
                if error is not None:
                    raise error
                return response

            if response is not None:
                response.close()

            delay = request.backoff.wait_duration(attempt)
            request.log_debug("Waiting before retry", attempt=attempt, wait_s=round(delay, 3))

            if ctx.wait(delay):
                request.log_debug("Context cancelled during backoff", error=str(ctx.error()))
                raise ctx.error()
