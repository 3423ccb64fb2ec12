"""
Integration tests: client, retry engine, rate limiter and response together.
"""

import io
import json
import threading
import time

import pytest
import responses

from fetcher import (
    Client,
    LoggingConfig,
    NoBackoff,
    with_after_do_func,
    with_cancel,
    with_copied_body,
    with_json_payload,
    with_max_attempts,
    with_no_backoff,
    with_reader_multipart_payload,
    with_timeout,
)
from fetcher.core.exceptions import CancelledError, DeadlineExceededError

pytestmark = pytest.mark.integration


@responses.activate
def test_retry_then_decode(tmp_path):
    """Тест: 2x503, затем 200 с JSON."""
    url = "https://api.example.com/orders"
    responses.add(responses.POST, url, status=503)
    responses.add(responses.POST, url, status=503)
    responses.add(responses.POST, url, json={"id": 99}, status=201)

    log_path = tmp_path / "fetcher.log"
    logging_config = LoggingConfig.create(
        level="DEBUG", format="json", enable_console=False, enable_file=True, file_path=str(log_path)
    )

    with Client(base_url="https://api.example.com", max_attempts=3, backoff=NoBackoff(0),
                logging=logging_config) as client:
        with client.post("/orders", with_json_payload({"sku": "A-1"})) as resp:
            assert resp.status_code == 201
            assert resp.decode(with_copied_body()) == {"id": 99}
            assert json.loads(resp.bytes()) == {"id": 99}

    assert len(responses.calls) == 3
    # тело отправлено заново на каждой попытке
    assert all(json.loads(call.request.body) == {"sku": "A-1"} for call in responses.calls)

    with open(log_path, encoding="utf-8") as f:
        messages = [json.loads(line)["message"] for line in f]
    assert messages.count("Request attempt") == 3
    assert messages.count("Waiting before retry") == 2
    assert messages[-1] == "Request completed"


@responses.activate
def test_exhausted_attempts_return_last_response():
    url = "https://api.example.com/down"
    responses.add(responses.GET, url, status=502)

    with Client() as client:
        with client.get(url, with_max_attempts(4), with_no_backoff(0)) as resp:
            assert resp.status == "502 Bad Gateway"

    assert len(responses.calls) == 4


@responses.activate
def test_request_deadline_bounds_backoff():
    """Deadline запроса прерывает паузу между попытками."""
    url = "https://api.example.com/slow"
    responses.add(responses.GET, url, status=503)

    started = time.monotonic()
    with Client() as client:
        with pytest.raises(DeadlineExceededError):
            client.get(url, with_max_attempts(5), with_no_backoff(30), with_timeout(0.2))

    assert time.monotonic() - started < 5
    assert len(responses.calls) == 1


@responses.activate
def test_cancel_from_another_thread():
    url = "https://api.example.com/slow"
    responses.add(responses.GET, url, status=500)
    ctx = with_cancel()
    threading.Timer(0.1, ctx.cancel).start()

    with Client() as client:
        with pytest.raises(CancelledError):
            client.get(url, with_max_attempts(5), with_no_backoff(30), ctx=ctx)


@responses.activate
def test_after_do_sees_final_response():
    url = "https://api.example.com/flaky"
    responses.add(responses.GET, url, status=500)
    responses.add(responses.GET, url, status=200, body="done")
    statuses = []

    with Client() as client:
        resp = client.get(
            url,
            with_max_attempts(2),
            with_no_backoff(0),
            with_after_do_func(lambda req, r: statuses.append(r.status_code)),
        )
        with resp:
            assert resp.bytes() == b"done"

    assert statuses == [200]


@responses.activate
def test_multipart_upload_single_attempt():
    """Multipart не повторяется: тело нельзя отправить второй раз."""
    url = "https://api.example.com/upload"
    responses.add(responses.POST, url, status=503)
    data = io.BytesIO(b"file contents")

    with Client() as client:
        with client.post(url, with_reader_multipart_payload("file", "a.txt", data), with_max_attempts(3)) as resp:
            assert resp.status_code == 503

    assert len(responses.calls) == 1
    # caller-owned data stays open
    assert not data.closed


@responses.activate
def test_rate_limited_client_shared_between_threads():
    url = "https://api.example.com/x"
    responses.add(responses.GET, url, status=204)

    with Client(rate=20, rate_duration=1.0) as client:
        def worker():
            client.get(url).close()

        started = time.monotonic()
        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        elapsed = time.monotonic() - started

    assert len(responses.calls) == 4
    assert elapsed >= 0.19
