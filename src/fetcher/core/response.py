"""
Response wrapper: body access, decode, and idempotent release.

The raw body of a response is a single-pass stream. It can be consumed once,
by decode() or bytes(); later reads go through the buffered copy when one was
requested with with_copied_body().
"""

import io
import logging
import shutil
from typing import TYPE_CHECKING, Any, BinaryIO, Optional

import requests

from .buffer_pool import BufferPool, get_default_pool
from .context import Context
from .decode import (
    CONTENT_TYPE_HEADER,
    ChunkReader,
    DecodeFunc,
    DecodeOption,
    TeeReader,
    decoder_for_content_type,
)
from .exceptions import BodyConsumedError, DecodeError, FetcherException

if TYPE_CHECKING:
    from .request import Request

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class Response:
    """
    Result of Client.execute().

    Owns the transport response and, when requested, a pooled copy of its
    body. Always close() it, or use it as a context manager.

    Example:
        >>> with client.get("https://api.example.com/users") as resp:
        ...     if resp.status_code == 200:
        ...         users = resp.decode()
    """

    def __init__(
        self,
        request: Optional['Request'],
        http_response: requests.Response,
        buffer_pool: Optional[BufferPool] = None
    ):
        self.request = request
        self.http_response = http_response
        self._pool = buffer_pool or get_default_pool()

        # set through decode options
        self.decode_func: Optional[DecodeFunc] = None
        self.keep_body = False

        self._raw_stream: Optional[io.BufferedReader] = None
        self._copied_body: Optional[io.BytesIO] = None
        self._body_consumed = False
        self._body_closed = False
        self._closed = False

    # ==================== Свойства ====================

    @property
    def status_code(self) -> int:
        return self.http_response.status_code

    @property
    def status(self) -> str:
        """Status line, e.g. '503 Service Unavailable'."""
        reason = self.http_response.reason or ""
        return f"{self.status_code} {reason}".strip()

    @property
    def headers(self):
        return self.http_response.headers

    @property
    def url(self) -> str:
        return self.http_response.url

    @property
    def content_type(self) -> Optional[str]:
        return self.http_response.headers.get(CONTENT_TYPE_HEADER)

    @property
    def closed(self) -> bool:
        return self._closed

    # ==================== Тело ответа ====================

    def _stream(self) -> io.BufferedReader:
        """Lazily open the single-pass raw body stream."""
        if self._raw_stream is None:
            chunks = self.http_response.iter_content(chunk_size=CHUNK_SIZE)
            self._raw_stream = io.BufferedReader(ChunkReader(chunks))
        return self._raw_stream

    def body(self) -> BinaryIO:
        """
        Body as a binary stream.

        Returns a fresh reader over the buffered copy when one exists,
        otherwise the raw stream (not readable again after decode/bytes).
        """
        if self._copied_body is not None:
            return io.BytesIO(self._copied_body.getvalue())
        return self._stream()

    def bytes(self) -> bytes:
        """
        Read the rest of the body, close the raw stream and keep a copy.

        Continues from where body() left off when the raw stream was
        partially read.

        Raises:
            BodyConsumedError: body already consumed and no copy was kept
        """
        if self._copied_body is not None:
            return self._copied_body.getvalue()
        if self._body_consumed:
            raise BodyConsumedError()

        stream_was_opened = self._raw_stream is not None
        stream = self._stream()
        if stream_was_opened and not stream.peek(1):
            # body() дочитан до конца
            self._body_consumed = True
            self._close_body()
            raise BodyConsumedError()

        buf = self._pool.acquire()
        try:
            shutil.copyfileobj(stream, buf, CHUNK_SIZE)
        except BaseException:
            self._pool.release(buf)
            raise
        finally:
            self._body_consumed = True
            self._close_body()

        self._copied_body = buf
        self.keep_body = True
        return buf.getvalue()

    def decode(self, *options: DecodeOption, ctx: Optional[Context] = None) -> Any:
        """
        Decode the body into a Python value.

        Options run in order; an explicit decoder overrides Content-Type
        detection. The raw body is closed afterwards whether decoding
        succeeds or fails.

        Args:
            *options: Decode options (with_json_body(), with_copied_body(), ...)
            ctx: Context; decoding does not start if it is already done

        Returns:
            Decoded value (dict/list for JSON, Element for XML, ...)

        Raises:
            UndeterminableDecoderError: no explicit decoder and unknown Content-Type
            BodyConsumedError: raw body already consumed and no copy kept
            DecodeError: the decoder failed
        """
        if ctx is not None:
            ctx.raise_if_done()

        self.decode_func = None
        for option in options:
            option(self)

        if self._body_consumed:
            if self._copied_body is None:
                raise BodyConsumedError()
            decode_func = self.decode_func or decoder_for_content_type(self.content_type)
            return self._run_decoder(decode_func, io.BytesIO(self._copied_body.getvalue()))

        try:
            reader: BinaryIO = self._stream()
            if self.keep_body:
                self._copied_body = self._pool.acquire()
                reader = io.BufferedReader(TeeReader(reader, self._copied_body))

            try:
                decode_func = self.decode_func or decoder_for_content_type(self.content_type)
                return self._run_decoder(decode_func, reader)
            finally:
                if self.keep_body:
                    # the copy must hold the whole body, not just what the decoder read
                    reader.read()
        finally:
            self._body_consumed = True
            self._close_body()

    def _run_decoder(self, decode_func: DecodeFunc, stream: BinaryIO) -> Any:
        try:
            return decode_func(stream)
        except FetcherException:
            raise
        except Exception as e:
            logger.debug("Decode failed for %s: %s", self.url, e)
            raise DecodeError(f"failed to decode response body: {e}") from e

    # ==================== Управление жизненным циклом ====================

    def _close_body(self) -> None:
        if self._body_closed:
            return
        self._body_closed = True
        try:
            self.http_response.close()
        except EOFError:
            pass

    def close(self) -> None:
        """
        Release the body and return the copy buffer to the pool.

        Idempotent: a second call does nothing.
        """
        if self._closed:
            return
        self._closed = True

        if self._copied_body is not None:
            self._pool.release(self._copied_body)
            self._copied_body = None

        self._close_body()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"<Response [{self.status}]>"
