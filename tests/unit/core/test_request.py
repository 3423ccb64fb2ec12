"""Tests for Request and its options."""

import io
import logging
import pickle
import time
from datetime import datetime, timedelta, timezone

import pytest

from fetcher.core.backoff import DEFAULT_BACKOFF, ExponentialBackoff, LinearBackoff, NoBackoff
from fetcher.core.client import Client
from fetcher.core.exceptions import PayloadError, RequestBuildError
from fetcher.core.request import (
    MultipartStream,
    Request,
    with_accept_json_header,
    with_base_url,
    with_bytes_payload,
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
    with_pickle_payload,
    with_reader_multipart_payload,
    with_reader_payload,
    with_retry_on_eof,
    with_timeout,
)


def read_multipart(stream):
    return b"".join(stream)


class TestOptions:
    """Options applied through Client.new_request()."""

    def test_client_retry_defaults(self, base_url):
        with Client(base_url=base_url, max_attempts=4, retry_on_eof=True) as client:
            req = client.new_request("get", "/x")

        assert req.method == "GET"
        assert req.max_attempts == 4
        assert req.retry_on_eof is True
        assert req.backoff == DEFAULT_BACKOFF

    def test_retry_options(self, client):
        req = client.new_request("GET", "/x", with_max_attempts(0), with_retry_on_eof())
        assert req.max_attempts == 1
        assert req.retry_on_eof is True

    @pytest.mark.parametrize("option,expected", [
        (with_no_backoff(0.5), NoBackoff(0.5)),
        (with_linear_backoff(1, 1, 5), LinearBackoff(1, 1, 5)),
        (with_linear_jitter_backoff(1, 1, 5), LinearBackoff(1, 1, 5, jitter=True)),
        (with_exponential_backoff(1, 5), ExponentialBackoff(1, 5)),
        (with_exponential_jitter_backoff(1, 5), ExponentialBackoff(1, 5, jitter=True)),
        (with_default_backoff(), DEFAULT_BACKOFF),
    ])
    def test_backoff_options(self, client, option, expected):
        assert client.new_request("GET", "/x", option).backoff == expected

    def test_base_url_option_prepends(self):
        req = Request("GET", "/v1/users")
        with_base_url("https://api.example.com")(req)
        assert req.url == "https://api.example.com/v1/users"

    def test_timeout_sets_deadline(self, client):
        before = time.monotonic()
        req = client.new_request("GET", "/x", with_timeout(10))
        assert before + 10 <= req.deadline <= time.monotonic() + 10

    def test_deadline_datetime(self, client):
        when = datetime.now(timezone.utc) + timedelta(seconds=30)
        req = client.new_request("GET", "/x", with_deadline(when))
        assert 20 < req.deadline - time.monotonic() <= 30

    def test_logger_option_wraps_stdlib_logger(self, client):
        req = client.new_request("GET", "/x", with_logger(logging.getLogger("myapp.http")))
        assert req.logger.logger.name == "myapp.http"

    def test_accept_json(self, client):
        req = client.new_request("GET", "/x", with_accept_json_header())
        assert req.prepared.headers["Accept"] == "application/json"


class TestPayloads:
    """Payload options."""

    def test_json_none_is_noop(self, client):
        req = client.new_request("POST", "/x", with_json_payload(None))
        assert req.payload is None
        assert "Content-Type" not in req.prepared.headers

    def test_pickle_payload(self, client):
        req = client.new_request("POST", "/x", with_pickle_payload({"a": [1, 2]}))
        assert pickle.loads(req.prepared.body) == {"a": [1, 2]}
        assert req.prepared.headers["Content-Type"] == "application/x-python-pickle"

    def test_unpicklable_payload(self, client):
        with pytest.raises(RequestBuildError):
            client.new_request("POST", "/x", with_pickle_payload(lambda: None))

    def test_last_payload_wins(self, client, pool):
        req = client.new_request(
            "POST", "/x",
            with_json_payload({"a": 1}),
            with_bytes_payload(b"raw"),
        )
        assert req.prepared.body == b"raw"
        # the json buffer went back to the pool when it was replaced
        assert pool.idle_count == 1

    def test_bytes_payload_is_replayable(self, client):
        assert client.new_request("POST", "/x", with_bytes_payload(b"abc")).replayable

    def test_reader_payload_not_replayable(self, client):
        req = client.new_request("POST", "/x", with_reader_payload(io.BytesIO(b"abc")))
        assert not req.replayable

    def test_finish_releases_buffer_once(self, client, pool):
        req = client.new_request("POST", "/x", with_json_payload({"a": 1}))
        req.finish()
        req.finish()
        assert pool.idle_count == 1


class TestStr:
    """Masked string rendering."""

    def test_str_masks_secrets(self, client):
        req = client.new_request(
            "POST", "/login?api_key=k123",
            with_header("Authorization", "Bearer t0ken"),
            with_json_payload({"user": "bob", "password": "hunter2"}),
        )
        text = str(req)

        assert text.startswith("method:POST | url:https://api.example.com/login?")
        assert "max_attempts:1" in text
        assert "k123" not in text
        assert "t0ken" not in text
        assert "hunter2" not in text
        assert "payload (string):'" in text

    def test_repr(self):
        assert repr(Request("get", "https://api.example.com/x")) == "<Request [GET https://api.example.com/x]>"


class TestMultipart:
    """Multipart streaming body."""

    def test_framing(self):
        stream = MultipartStream(
            fieldname="file",
            filename="report.csv",
            data=io.BytesIO(b"a,b\n1,2\n"),
            fields=lambda: [("kind", "csv")],
            chunk_size=4,
        )

        body = read_multipart(stream)

        b = stream.boundary.encode()
        assert body.startswith(b"--" + b + b"\r\n")
        assert b'Content-Disposition: form-data; name="kind"\r\n\r\ncsv\r\n' in body
        assert b'name="file"; filename="report.csv"' in body
        assert b"Content-Type: application/octet-stream\r\n\r\na,b\n1,2\n" in body
        assert body.endswith(b"\r\n--" + b + b"--\r\n")
        assert stream.result.result(timeout=1) is None
        assert stream.content_type == f"multipart/form-data; boundary={stream.boundary}"

    def test_send_once(self):
        stream = MultipartStream("file", "f", io.BytesIO(b"x"), fields=list)
        read_multipart(stream)
        with pytest.raises(PayloadError):
            iter(stream)

    def test_producer_failure(self):
        class Broken(io.RawIOBase):
            def readable(self):
                return True

            def read(self, size=-1):
                raise OSError("disk gone")

        stream = MultipartStream("file", "f", Broken(), fields=list)

        read_multipart(stream)

        error = stream.error()
        assert isinstance(error, PayloadError)
        assert isinstance(error.__cause__, OSError)

    def test_stop_before_start_closes_owned_data(self):
        data = io.BytesIO(b"x")
        stream = MultipartStream("file", "f", data, fields=list, close_data=True)

        stream.stop()

        assert data.closed
        assert stream.error() is None
        assert read_multipart(stream) == b""

    def test_stop_unblocks_producer(self):
        """An abandoned upload does not leave the producer blocked."""
        stream = MultipartStream(
            "file", "f", io.BytesIO(b"x" * 1024), fields=list, chunk_size=1, queue_size=1
        )
        chunks = iter(stream)
        next(chunks)

        stream.stop(timeout=2.0)

        assert not stream._thread.is_alive()

    def test_fields_read_at_send_time(self, client):
        """Fields added after the file option still precede the file part."""
        req = client.new_request(
            "POST", "/upload",
            with_reader_multipart_payload("file", "a.txt", io.BytesIO(b"hello")),
            with_multipart_field("note", "first"),
        )

        body = read_multipart(req.multipart)

        assert body.index(b'name="note"') < body.index(b'name="file"')
        assert req.prepared.headers["Content-Type"].startswith("multipart/form-data; boundary=")
        assert not req.replayable
        req.finish()

    def test_filepath_payload(self, client, tmp_path):
        path = tmp_path / "upload.bin"
        path.write_bytes(b"\x00\x01")

        req = client.new_request("POST", "/upload", with_filepath_multipart_payload("file", str(path)))
        body = read_multipart(req.multipart)
        req.finish()

        assert b'filename="upload.bin"' in body
        assert b"\x00\x01" in body
        assert req.multipart._data.closed

    def test_filepath_missing(self, client, tmp_path):
        with pytest.raises(RequestBuildError):
            client.new_request(
                "POST", "/upload",
                with_filepath_multipart_payload("file", str(tmp_path / "missing")),
            )
