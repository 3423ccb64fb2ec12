import atexit
import logging
import time
import warnings
import weakref
from typing import Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests

from .buffer_pool import BufferPool, get_default_pool
from .config import ClientConfig
from .context import Context, background
from .logging import FetcherLogger
from .logging.filters import clear_correlation_id, set_correlation_id
from .rate_limit import RateLimiter
from .request import Request, RequestOption
from .response import Response
from .retry_engine import RetryEngine
from .session_manager import SessionManager, build_session


def _close_at_exit(client_ref: 'weakref.ref[Client]') -> None:
    client = client_ref()
    if client is not None:
        client.close()


class Client:
    """
    HTTP клиент с повторами, лимитом частоты и управлением телом ответа.

    Features:
        - Функциональные опции запроса (with_*), общие опции клиента
        - Повторы на 5xx и разрывах соединения с настраиваемым backoff
        - Deadline/отмена через Context на всю последовательность попыток
        - Лимит частоты, общий для всех потоков клиента
        - Thread-safe: каждый поток получает собственную сессию
        - Immutable после создания

    Example:
        >>> with Client(base_url="https://api.example.com", max_attempts=3) as client:
        ...     with client.get("/users", with_param("page", 2)) as resp:
        ...         users = resp.decode()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        config: Optional[ClientConfig] = None,
        request_options: Optional[Sequence[RequestOption]] = None,
        buffer_pool: Optional[BufferPool] = None,
        **kwargs
    ):
        """
        Args:
            base_url: Базовый URL (если config не передан)
            config: ClientConfig
            request_options: Опции, применяемые к каждому new_request() до опций вызова
            buffer_pool: Пул буферов (по умолчанию общий на процесс)
            **kwargs: Параметры ClientConfig.create(), если config не передан
        """
        if config is None:
            config = ClientConfig.create(base_url=base_url, **kwargs)
        elif base_url is not None or kwargs:
            raise ValueError("pass either config or base_url/config parameters, not both")

        object.__setattr__(self, '_config', config)
        object.__setattr__(self, '_request_options', tuple(request_options or ()))
        object.__setattr__(self, '_buffer_pool', buffer_pool or get_default_pool())
        object.__setattr__(self, '_rate_limiter', RateLimiter(
            rate=config.rate_limit.rate,
            duration=config.rate_limit.duration,
        ))
        object.__setattr__(self, '_logger', self._create_logger(config))
        object.__setattr__(
            self,
            '_session_manager',
            SessionManager(session_factory=lambda: build_session(config))
        )

        atexit.register(_close_at_exit, weakref.ref(self))

        object.__setattr__(self, '_initialized', True)

    def __setattr__(self, name, value):
        """Запретить изменение после init (immutability)."""
        if hasattr(self, '_initialized'):
            raise RuntimeError(
                f"Cannot modify '{name}' - Client is immutable. "
                f"Create new instance instead."
            )
        object.__setattr__(self, name, value)

    @staticmethod
    def _create_logger(config: ClientConfig) -> FetcherLogger:
        """Логгер из config.logging, иначе обёртка над логгером модуля."""
        if config.logging is None:
            return FetcherLogger(logger=logging.getLogger(__name__))

        name = "fetcher"
        if config.base_url:
            parsed = urlparse(config.base_url)
            name = f"fetcher.{parsed.netloc or 'unknown'}"
        return FetcherLogger(config=config.logging, name=name)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ==================== Управление жизненным циклом ====================

    def close(self) -> None:
        """
        Закрыть сессии всех потоков, логгер и остановить лимитер.

        Безопасно вызывать повторно.
        """
        self._rate_limiter.stop()
        self._logger.close()
        self._session_manager.close_all()

    def __del__(self):
        try:
            count = self._session_manager.active_sessions
        except AttributeError:
            return
        if count > 0:
            warnings.warn(
                f"Client garbage collected with {count} unclosed session(s). "
                "Use 'with Client() as client:' or call client.close() explicitly.",
                ResourceWarning,
                stacklevel=2
            )
            self._session_manager.close_all()

    # ==================== Запросы ====================

    def _build_url(self, endpoint: str) -> str:
        """Склеить base_url и endpoint; абсолютный URL остаётся как есть."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint

        base = self._config.base_url
        if base:
            return f"{base}/{endpoint.lstrip('/')}"
        return endpoint

    def new_request(
        self,
        method: str,
        url: str,
        *options: RequestOption,
        ctx: Optional[Context] = None
    ) -> Request:
        """
        Собрать запрос: опции клиента, затем опции вызова, затем prepare.

        Args:
            method: HTTP метод
            url: Endpoint или полный URL
            *options: Опции запроса (with_*)
            ctx: Контекст; уже завершённый не даёт собирать запрос

        Returns:
            Request, готовый к execute()

        Raises:
            RequestBuildError: опция или prepare не удались
            CancelledError: ctx уже завершён
        """
        if ctx is not None:
            ctx.raise_if_done()

        retry = self._config.retry
        request = Request(
            method,
            self._build_url(url),
            max_attempts=retry.max_attempts,
            backoff=retry.backoff,
            retry_on_eof=retry.retry_on_eof,
            buffer_pool=self._buffer_pool,
        )

        try:
            for option in self._request_options + options:
                option(request)
            request.prepare(self.session)
        except BaseException:
            request.finish()
            raise

        return request

    def _send(self, prepared: requests.PreparedRequest, timeout: Tuple[float, float]) -> requests.Response:
        """Одна попытка через thread-local сессию. Тело ответа не читается."""
        session = self.session
        settings = session.merge_environment_settings(
            prepared.url, {}, True, self._config.security.verify_ssl, None
        )
        return session.send(
            prepared,
            timeout=timeout,
            allow_redirects=self._config.security.allow_redirects,
            **settings
        )

    def execute(self, request: Request, ctx: Optional[Context] = None) -> Response:
        """
        Выполнить запрос.

        Порядок: лимит частоты, попытки с backoff, after-do колбэки.
        Deadline запроса (with_timeout/with_deadline) ограничивает всю
        последовательность попыток, не затрагивая ctx вызывающего.

        Args:
            request: Запрос из new_request()
            ctx: Контекст вызова (None - background)

        Returns:
            Response; закрыть через close() или with

        Raises:
            CancelledError: ctx отменён или истёк deadline
            FetcherException: ошибка транспорта, payload или колбэка
        """
        ctx = ctx or background()
        ctx.raise_if_done()

        if request.logger is None:
            request.logger = self._logger
        if request.prepared is None:
            request.prepare(self.session)

        set_correlation_id(request.id)
        start_time = time.monotonic()

        try:
            with Context(ctx, deadline=request.deadline) as run_ctx:
                self._rate_limiter.limit(run_ctx)
                run_ctx.raise_if_done()

                http_response = RetryEngine(self._send).execute(
                    request, run_ctx, self._config.timeout.as_tuple()
                )

            response = Response(request, http_response, self._buffer_pool)

            for after_do in request.after_do_funcs:
                try:
                    after_do(request, response)
                except BaseException:
                    response.close()
                    raise

            request.log_info(
                "Request completed",
                method=request.method,
                url=request.url,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )
            return response
        finally:
            request.finish()
            clear_correlation_id()

    def _call(self, method: str, url: str, options: Tuple[RequestOption, ...], ctx: Optional[Context]) -> Response:
        request = self.new_request(method, url, *options, ctx=ctx)
        return self.execute(request, ctx=ctx)

    def get(self, url: str, *options: RequestOption, ctx: Optional[Context] = None) -> Response:
        """
        Выполняет GET запрос.

        Args:
            url: Endpoint или полный URL
            *options: Опции запроса
            ctx: Контекст вызова
        """
        return self._call("GET", url, options, ctx)

    def head(self, url: str, *options: RequestOption, ctx: Optional[Context] = None) -> Response:
        return self._call("HEAD", url, options, ctx)

    def post(self, url: str, *options: RequestOption, ctx: Optional[Context] = None) -> Response:
        return self._call("POST", url, options, ctx)

    def put(self, url: str, *options: RequestOption, ctx: Optional[Context] = None) -> Response:
        return self._call("PUT", url, options, ctx)

    def patch(self, url: str, *options: RequestOption, ctx: Optional[Context] = None) -> Response:
        return self._call("PATCH", url, options, ctx)

    def delete(self, url: str, *options: RequestOption, ctx: Optional[Context] = None) -> Response:
        return self._call("DELETE", url, options, ctx)

    # ==================== Свойства ====================

    @property
    def session(self) -> requests.Session:
        """Thread-local сессия текущего потока."""
        return self._session_manager.get_session()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def base_url(self) -> Optional[str]:
        return self._config.base_url

    @property
    def logger(self) -> FetcherLogger:
        return self._logger

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def buffer_pool(self) -> BufferPool:
        return self._buffer_pool

    @property
    def request_options(self) -> Tuple[RequestOption, ...]:
        return self._request_options

    def __repr__(self) -> str:
        return f"<Client base_url={self.base_url!r}>"
