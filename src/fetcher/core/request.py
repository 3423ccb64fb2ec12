"""
Request building through functional options.

A Request is assembled by applying options in order (client parent options
first, then the call's own), then prepared once against a session.

Example:
    >>> req = client.new_request(
    ...     "POST", "/users",
    ...     with_json_payload({"name": "alice"}),
    ...     with_max_attempts(3),
    ...     with_exponential_jitter_backoff(0.5, 10),
    ...     with_timeout(30),
    ... )
    >>> with client.execute(req) as resp:
    ...     user = resp.decode()
"""

import io
import json
import logging
import os
import pickle
import queue
import threading
import time
import uuid
from concurrent.futures import Future
from datetime import datetime
from typing import (
    Any,
    BinaryIO,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)
from urllib.parse import urlencode

import requests
from urllib3.fields import RequestField
from urllib3.filepost import choose_boundary

from .backoff import (
    DEFAULT_BACKOFF,
    BackoffStrategy,
    ExponentialBackoff,
    LinearBackoff,
    NoBackoff,
)
from .buffer_pool import BufferPool, get_default_pool
from .context import to_monotonic
from .decode import (
    ACCEPT_HEADER,
    CONTENT_TYPE_HEADER,
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_PICKLE,
    CONTENT_TYPE_URLENCODED,
)
from .exceptions import PayloadError, RequestBuildError
from .logging import FetcherLogger
from ..utils.sanitizer import mask_headers, mask_sensitive_data, mask_url

RequestOption = Callable[['Request'], None]
AfterDoFunc = Callable[['Request', Any], None]

PAYLOAD_PREVIEW_LIMIT = 512

_module_logger = FetcherLogger(logger=logging.getLogger(__name__))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MULTIPART STREAM
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class _Stopped(Exception):
    """The consumer went away; the producer must exit."""


_END = object()


class MultipartStream:
    """
    multipart/form-data body produced by a background thread.

    The producer frames the form fields, then streams the file part from
    ``data`` into a bounded queue; the transport iterates the stream as a
    chunked body. The producer's outcome lands in ``result`` (a one-shot
    Future): None on success, PayloadError on failure. A failed producer ends
    the body early instead of raising inside the transport.

    stop() makes the producer exit at its next queue operation, so an
    abandoned upload never leaves a thread blocked on a full queue.
    """

    def __init__(
        self,
        fieldname: str,
        filename: str,
        data: BinaryIO,
        fields: Callable[[], List[Tuple[str, str]]],
        close_data: bool = False,
        chunk_size: int = 64 * 1024,
        queue_size: int = 16,
        logger: Optional[Callable[[], FetcherLogger]] = None
    ):
        self.fieldname = fieldname
        self.filename = filename
        self.boundary = choose_boundary()
        self.content_type = f"multipart/form-data; boundary={self.boundary}"
        self.chunk_size = chunk_size
        self.result: Future = Future()

        self._data = data
        self._fields = fields
        self._close_data = close_data
        self._logger = logger or (lambda: _module_logger)
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._iterated = False

    # ==================== Consumer ====================

    def __iter__(self) -> Iterator[bytes]:
        with self._lock:
            if self._iterated:
                raise PayloadError("multipart body can only be sent once")
            self._iterated = True
            if self._stop.is_set():
                return iter(())
            self._thread = threading.Thread(
                target=self._produce,
                name=f"fetcher-multipart-{self.fieldname}",
                daemon=True,
            )
            self._thread.start()
        return self._consume()

    def _consume(self) -> Iterator[bytes]:
        while True:
            try:
                item = self._queue.get(timeout=0.1)
            except queue.Empty:
                if self._stop.is_set():
                    return
                continue
            if item is _END:
                return
            yield item

    # ==================== Producer ====================

    def _put(self, item: Any) -> None:
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=0.1)
                return
            except queue.Full:
                continue
        raise _Stopped()

    def _part_header(self, name: str, filename: Optional[str] = None) -> bytes:
        field = RequestField(name=name, data=b"", filename=filename)
        field.make_multipart(content_type="application/octet-stream" if filename else None)
        return f"--{self.boundary}\r\n{field.render_headers()}".encode()

    def _produce(self) -> None:
        try:
            try:
                for name, value in self._fields():
                    self._put(self._part_header(name) + str(value).encode() + b"\r\n")

                self._put(self._part_header(self.fieldname, self.filename))
                while True:
                    chunk = self._data.read(self.chunk_size)
                    if not chunk:
                        break
                    self._put(chunk.encode() if isinstance(chunk, str) else chunk)

                self._put(f"\r\n--{self.boundary}--\r\n".encode())
            finally:
                if self._close_data:
                    self._data.close()
        except _Stopped:
            self._finish(None)
            return
        except Exception as e:
            self._logger().error(
                "Multipart producer failed",
                fieldname=self.fieldname,
                error=str(e),
                error_type=type(e).__name__,
            )
            error = PayloadError(f"multipart payload failed: {e}")
            error.__cause__ = e
            self._finish(error)
        else:
            self._finish(None)

        try:
            self._put(_END)
        except _Stopped:
            pass

    def _finish(self, error: Optional[PayloadError]) -> None:
        if self.result.done():
            return
        if error is None:
            self.result.set_result(None)
        else:
            self.result.set_exception(error)

    # ==================== Lifecycle ====================

    def error(self) -> Optional[BaseException]:
        """Producer failure, if it has already failed."""
        if not self.result.done():
            return None
        return self.result.exception()

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the producer. Idempotent."""
        self._stop.set()
        with self._lock:
            thread = self._thread
            started = self._iterated

        if thread is not None:
            thread.join(timeout)
        elif not started:
            if self._close_data:
                self._data.close()
            self._finish(None)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REQUEST
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Request:
    """
    One logical HTTP call: method, url, payload and retry settings.

    Created by Client.new_request(); executed by Client.execute().
    """

    def __init__(
        self,
        method: str,
        url: str,
        max_attempts: int = 1,
        backoff: BackoffStrategy = DEFAULT_BACKOFF,
        retry_on_eof: bool = False,
        buffer_pool: Optional[BufferPool] = None
    ):
        self.id = uuid.uuid4().hex
        self.method = method.upper()
        self.url = url

        self.params: List[Tuple[str, str]] = []
        self.headers: List[Tuple[str, str]] = []
        self.cookies: List[Tuple[str, str]] = []
        self.basic_auth: Optional[Tuple[str, str]] = None

        self.payload: Union[None, bytes, BinaryIO, Iterable[bytes]] = None
        self.multipart_fields: List[Tuple[str, str]] = []
        self.multipart: Optional[MultipartStream] = None

        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.retry_on_eof = retry_on_eof
        self.deadline: Optional[float] = None
        self.after_do_funcs: List[AfterDoFunc] = []

        self.logger: Optional[FetcherLogger] = None
        self.prepared: Optional[requests.PreparedRequest] = None

        self._pool = buffer_pool or get_default_pool()
        self._payload_buffer: Optional[io.BytesIO] = None
        self._finished = False

    # ==================== Payload ====================

    def _clear_payload(self) -> None:
        if self._payload_buffer is not None:
            self._pool.release(self._payload_buffer)
            self._payload_buffer = None
        if self.multipart is not None:
            self.multipart.stop()
            self.multipart = None
        self.payload = None

    def set_buffered_payload(self, write: Callable[[io.BytesIO], None]) -> None:
        """Encode a payload into a pooled buffer owned by this request."""
        buf = self._pool.acquire()
        try:
            write(buf)
        except BaseException:
            self._pool.release(buf)
            raise
        self._clear_payload()
        self._payload_buffer = buf
        self.payload = buf.getvalue()

    def set_payload(self, payload: Union[None, bytes, BinaryIO, Iterable[bytes]]) -> None:
        self._clear_payload()
        self.payload = payload

    def set_multipart(self, stream: MultipartStream) -> None:
        self._clear_payload()
        self.multipart = stream
        self.payload = stream

    @property
    def replayable(self) -> bool:
        """Whether the body can be sent again on a retry."""
        return self.payload is None or isinstance(self.payload, bytes)

    def payload_error(self) -> Optional[BaseException]:
        """Failure of the streaming multipart producer, if any."""
        if self.multipart is None:
            return None
        return self.multipart.error()

    # ==================== Prepare ====================

    def _merged_headers(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        lower_keys: Dict[str, str] = {}
        for key, value in self.headers:
            existing = lower_keys.get(key.lower())
            if existing is None:
                lower_keys[key.lower()] = key
                merged[key] = value
            else:
                merged[existing] = f"{merged[existing]}, {value}"
        return merged

    def prepare(self, session: requests.Session) -> requests.PreparedRequest:
        """
        Build the PreparedRequest once.

        Session headers and cookies are merged in; params are encoded into the
        url, which is updated to the final form.

        Raises:
            RequestBuildError: invalid url or unsupported payload
        """
        raw = requests.Request(
            method=self.method,
            url=self.url,
            headers=self._merged_headers(),
            params=self.params or None,
            cookies=dict(self.cookies) if self.cookies else None,
            auth=self.basic_auth,
            data=self.payload,
        )
        try:
            self.prepared = session.prepare_request(raw)
        except (requests.exceptions.RequestException, ValueError) as e:
            raise RequestBuildError(f"cannot build request {self.method} {mask_url(self.url)}: {e}") from e

        self.url = self.prepared.url
        return self.prepared

    # ==================== Logging ====================

    def _log(self, level: int, message: str, **fields: Any) -> None:
        (self.logger or _module_logger).log(level, message, request_id=self.id, **fields)

    def log_debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def log_info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def log_warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def log_error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, **fields)

    # ==================== Lifecycle ====================

    def finish(self) -> None:
        """
        Release the pooled payload buffer and stop the multipart producer.

        Called by Client.execute() when execution ends. Idempotent.
        """
        if self._finished:
            return
        self._finished = True

        if self._payload_buffer is not None:
            self._pool.release(self._payload_buffer)
            self._payload_buffer = None
        if self.multipart is not None:
            self.multipart.stop()

    close = finish

    def _payload_preview(self) -> str:
        if not isinstance(self.payload, bytes):
            return ""
        text = self.payload[:PAYLOAD_PREVIEW_LIMIT].decode("utf-8", errors="replace")
        return mask_sensitive_data(text)

    def __str__(self) -> str:
        return (
            f"method:{self.method} | url:{mask_url(self.url)} | "
            f"max_attempts:{self.max_attempts} | "
            f"headers:{mask_headers(self._merged_headers())} | "
            f"payload (string):'{self._payload_preview()}'"
        )

    def __repr__(self) -> str:
        return f"<Request [{self.method} {mask_url(self.url)}]>"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# URL, HEADERS, AUTH
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def with_base_url(base_url: str) -> RequestOption:
    """Prepend ``base_url`` to the request url as-is."""
    def option(req: Request) -> None:
        req.url = base_url + req.url
    return option


def with_header(key: str, value: str) -> RequestOption:
    """Add a header; repeated keys are joined with ', '."""
    def option(req: Request) -> None:
        req.headers.append((key, value))
    return option


def with_accept_json_header() -> RequestOption:
    return with_header(ACCEPT_HEADER, CONTENT_TYPE_JSON)


def with_param(key: str, value: Any) -> RequestOption:
    """Add a query parameter; repeated keys are all sent."""
    def option(req: Request) -> None:
        req.params.append((key, str(value)))
    return option


def with_cookie(name: str, value: str) -> RequestOption:
    def option(req: Request) -> None:
        req.cookies.append((name, value))
    return option


def with_cookies(cookies: Union[Mapping[str, str], Iterable[Tuple[str, str]]]) -> RequestOption:
    """Add several cookies from a mapping or (name, value) pairs."""
    pairs = list(cookies.items()) if isinstance(cookies, Mapping) else list(cookies)

    def option(req: Request) -> None:
        req.cookies.extend(pairs)
    return option


def with_basic_auth(username: str, password: str) -> RequestOption:
    def option(req: Request) -> None:
        req.basic_auth = (username, password)
    return option


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PAYLOADS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def with_json_payload(payload: Any) -> RequestOption:
    """
    JSON-encode ``payload`` and set Content-Type and Accept to JSON.

    None leaves the request untouched.

    Raises:
        RequestBuildError: payload is not JSON serializable
    """
    def option(req: Request) -> None:
        if payload is None:
            return
        try:
            encoded = json.dumps(payload).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise RequestBuildError(f"cannot encode JSON payload: {e}") from e
        req.headers.append((ACCEPT_HEADER, CONTENT_TYPE_JSON))
        req.headers.append((CONTENT_TYPE_HEADER, CONTENT_TYPE_JSON))
        req.set_buffered_payload(lambda buf: buf.write(encoded))
    return option


def with_pickle_payload(payload: Any) -> RequestOption:
    """
    Pickle ``payload`` and set Content-Type and Accept to the pickle type.

    Raises:
        RequestBuildError: payload cannot be pickled
    """
    def option(req: Request) -> None:
        if payload is None:
            return
        try:
            req.set_buffered_payload(lambda buf: pickle.dump(payload, buf))
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise RequestBuildError(f"cannot encode pickle payload: {e}") from e
        req.headers.append((ACCEPT_HEADER, CONTENT_TYPE_PICKLE))
        req.headers.append((CONTENT_TYPE_HEADER, CONTENT_TYPE_PICKLE))
    return option


def with_urlencoded_payload(payload: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]) -> RequestOption:
    """Form-encode ``payload`` (sequences become repeated keys)."""
    def option(req: Request) -> None:
        if payload is None:
            return
        encoded = urlencode(payload, doseq=True).encode("ascii")
        req.headers.append((CONTENT_TYPE_HEADER, CONTENT_TYPE_URLENCODED))
        req.set_buffered_payload(lambda buf: buf.write(encoded))
    return option


def with_bytes_payload(payload: bytes) -> RequestOption:
    def option(req: Request) -> None:
        req.set_payload(bytes(payload))
    return option


def with_reader_payload(payload: Union[BinaryIO, Iterable[bytes]]) -> RequestOption:
    """
    Stream the body from a file-like object or an iterable of chunks.

    The body cannot be re-sent, so the request runs a single attempt.
    """
    def option(req: Request) -> None:
        req.set_payload(payload)
    return option


def with_multipart_field(fieldname: str, value: str) -> RequestOption:
    """Add a form field to the multipart body (sent before the file part)."""
    def option(req: Request) -> None:
        req.multipart_fields.append((fieldname, value))
    return option


def _multipart(req: Request, fieldname: str, filename: str, data: BinaryIO, close_data: bool) -> None:
    stream = MultipartStream(
        fieldname=fieldname,
        filename=filename,
        data=data,
        fields=lambda: list(req.multipart_fields),
        close_data=close_data,
        logger=lambda: req.logger or _module_logger,
    )
    req.set_multipart(stream)
    req.headers.append((CONTENT_TYPE_HEADER, stream.content_type))


def with_reader_multipart_payload(fieldname: str, filename: str, data: BinaryIO) -> RequestOption:
    """
    Stream ``data`` as the file part of a multipart/form-data body.

    ``data`` stays open; the caller owns it.
    """
    def option(req: Request) -> None:
        _multipart(req, fieldname, filename, data, close_data=False)
    return option


def with_filepath_multipart_payload(fieldname: str, filepath: str) -> RequestOption:
    """
    Stream the file at ``filepath`` as the file part of a multipart body.

    Raises:
        RequestBuildError: the file cannot be opened
    """
    def option(req: Request) -> None:
        try:
            data = open(filepath, "rb")
        except OSError as e:
            raise RequestBuildError(f"cannot open multipart file {filepath!r}: {e}") from e
        _multipart(req, fieldname, os.path.basename(filepath), data, close_data=True)
    return option


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RETRY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def with_max_attempts(max_attempts: int) -> RequestOption:
    """Max attempts on 5xx and retryable errors; values below 1 become 1."""
    def option(req: Request) -> None:
        req.max_attempts = max(1, max_attempts)
    return option


def with_retry_on_eof() -> RequestOption:
    """
    Retry when the connection closes before a response (EOF).

    Typical of a pooled keep-alive connection the server already dropped.
    """
    def option(req: Request) -> None:
        req.retry_on_eof = True
    return option


def with_after_do_func(func: AfterDoFunc) -> RequestOption:
    """
    Run ``func(request, response)`` after a successful execution.

    Callbacks run in registration order; the first exception aborts the
    call and the response is closed.
    """
    def option(req: Request) -> None:
        req.after_do_funcs.append(func)
    return option


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# BACKOFF
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _with_backoff(strategy: BackoffStrategy) -> RequestOption:
    def option(req: Request) -> None:
        req.backoff = strategy
    return option


def with_default_backoff() -> RequestOption:
    """Exponential with jitter, 1s..30s."""
    return _with_backoff(DEFAULT_BACKOFF)


def with_no_backoff(delay: float) -> RequestOption:
    """Wait ``delay`` seconds before every retry."""
    return _with_backoff(NoBackoff(delay=delay))


def with_linear_backoff(interval: float, min: float, max: float) -> RequestOption:
    return _with_backoff(LinearBackoff(interval=interval, min=min, max=max))


def with_linear_jitter_backoff(interval: float, min: float, max: float) -> RequestOption:
    return _with_backoff(LinearBackoff(interval=interval, min=min, max=max, jitter=True))


def with_exponential_backoff(min: float, max: float) -> RequestOption:
    return _with_backoff(ExponentialBackoff(min=min, max=max))


def with_exponential_jitter_backoff(min: float, max: float) -> RequestOption:
    return _with_backoff(ExponentialBackoff(min=min, max=max, jitter=True))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TIMING, LOGGING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def with_timeout(timeout: float) -> RequestOption:
    """Deadline ``timeout`` seconds from now, covering every attempt and wait."""
    def option(req: Request) -> None:
        req.deadline = time.monotonic() + timeout
    return option


def with_deadline(deadline: Union[datetime, float]) -> RequestOption:
    """Absolute deadline (datetime, or a time.monotonic() value)."""
    def option(req: Request) -> None:
        req.deadline = to_monotonic(deadline)
    return option


def with_logger(logger: Union[FetcherLogger, logging.Logger]) -> RequestOption:
    """Log this request's events to ``logger`` instead of the client's."""
    if isinstance(logger, logging.Logger):
        logger = FetcherLogger(logger=logger)

    def option(req: Request) -> None:
        req.logger = logger
    return option
