"""
Decoder dispatch for response bodies.

A decoder is chosen explicitly through a decode option, or inferred from the
response Content-Type. Unknown media types are an error; the dispatcher never
guesses.

Example:
    >>> data = resp.decode()                                # by Content-Type
    >>> data = resp.decode(with_json_body())                # explicit
    >>> data = resp.decode(with_copied_body())              # keep a copy
    >>> resp.body().read()                                  # same bytes again
"""

import io
import json
import pickle
import xml.etree.ElementTree as ElementTree
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Iterable, Iterator, Optional

from .exceptions import UndeterminableDecoderError

if TYPE_CHECKING:
    from .response import Response

CONTENT_TYPE_HEADER = "Content-Type"
ACCEPT_HEADER = "Accept"

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_PICKLE = "application/x-python-pickle"
CONTENT_TYPE_XML = "application/xml"
CONTENT_TYPE_URLENCODED = "application/x-www-form-urlencoded"

DecodeFunc = Callable[[BinaryIO], Any]
DecodeOption = Callable[['Response'], None]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DECODERS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def json_decode(stream: BinaryIO) -> Any:
    return json.load(stream)


class RestrictedUnpickler(pickle.Unpickler):
    """Unpickler that refuses every global, so only builtin data can load."""

    def find_class(self, module: str, name: str):
        raise pickle.UnpicklingError(f"global '{module}.{name}' is forbidden")


def pickle_decode(stream: BinaryIO) -> Any:
    return RestrictedUnpickler(stream).load()


def xml_decode(stream: BinaryIO) -> ElementTree.Element:
    return ElementTree.parse(stream).getroot()


def media_type(content_type: Optional[str]) -> str:
    """'application/json; charset=utf-8' -> 'application/json'."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def decoder_for_content_type(content_type: Optional[str]) -> DecodeFunc:
    """
    Pick a decoder from a Content-Type header value.

    Raises:
        UndeterminableDecoderError: media type is not JSON, pickle or XML
    """
    mtype = media_type(content_type)

    if mtype == CONTENT_TYPE_JSON or mtype.endswith("+json"):
        return json_decode
    if mtype == CONTENT_TYPE_PICKLE:
        return pickle_decode
    if mtype in (CONTENT_TYPE_XML, "text/xml") or mtype.endswith("+xml"):
        return xml_decode

    raise UndeterminableDecoderError(content_type)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DECODE OPTIONS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def with_json_body() -> DecodeOption:
    """Decode the body as JSON regardless of Content-Type."""
    def option(resp: 'Response') -> None:
        resp.decode_func = json_decode
    return option


def with_pickle_body() -> DecodeOption:
    """Decode the body as (restricted) pickle regardless of Content-Type."""
    def option(resp: 'Response') -> None:
        resp.decode_func = pickle_decode
    return option


def with_xml_body() -> DecodeOption:
    """Decode the body as XML regardless of Content-Type."""
    def option(resp: 'Response') -> None:
        resp.decode_func = xml_decode
    return option


def with_custom_func(decode_func: DecodeFunc) -> DecodeOption:
    """Decode the body with a user function taking a binary stream."""
    def option(resp: 'Response') -> None:
        resp.decode_func = decode_func
    return option


def with_copied_body() -> DecodeOption:
    """
    Keep a copy of the body while decoding.

    Useful when the decode may fail and the full body is needed for a dump.
    """
    def option(resp: 'Response') -> None:
        resp.keep_body = True
    return option


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# STREAMS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ChunkReader(io.RawIOBase):
    """Raw binary stream over an iterator of byte chunks."""

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0

        n = min(len(b), len(self._pending))
        b[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


class TeeReader(io.RawIOBase):
    """Raw stream that copies everything read from ``source`` into ``sink``."""

    def __init__(self, source: BinaryIO, sink: BinaryIO):
        self._source = source
        self._sink = sink

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        data = self._source.read(len(b))
        if not data:
            return 0
        n = len(data)
        b[:n] = data
        self._sink.write(data)
        return n
