"""
Retry, backoff, deadline and cancellation examples.
"""

import threading

from fetcher import (
    Client,
    ExponentialBackoff,
    with_cancel,
    with_copied_body,
    with_exponential_jitter_backoff,
    with_max_attempts,
    with_retry_on_eof,
    with_timeout,
)
from fetcher.core.exceptions import CancelledError, DecodeError


def retry_on_5xx():
    """503 is retried with exponential backoff; the last response is returned."""
    print("\n=== Retry on 5xx ===")

    with Client(base_url="https://httpbin.org", max_attempts=3,
                backoff=ExponentialBackoff(min=0.5, max=4, jitter=True)) as client:
        with client.get("/status/503") as resp:
            print(f"Final status after retries: {resp.status}")


def per_request_policy():
    """Request options override the client defaults."""
    print("\n=== Per-request retry policy ===")

    with Client(base_url="https://httpbin.org") as client:
        with client.get(
            "/get",
            with_max_attempts(5),
            with_exponential_jitter_backoff(0.2, 2),
            with_retry_on_eof(),
            with_timeout(10),
        ) as resp:
            print(f"Status: {resp.status_code}")


def cancel_from_thread():
    """Cancel a request waiting between attempts."""
    print("\n=== Cancellation ===")

    ctx = with_cancel()
    threading.Timer(1.0, ctx.cancel).start()

    with Client(base_url="https://httpbin.org") as client:
        try:
            client.get("/status/500", with_max_attempts(10), with_exponential_jitter_backoff(2, 10), ctx=ctx)
        except CancelledError as e:
            print(f"Cancelled: {e}")


def dump_body_on_decode_error():
    """Keep a copy of the body so it can be logged when decoding fails."""
    print("\n=== Copied body ===")

    with Client(base_url="https://httpbin.org") as client:
        with client.get("/html") as resp:
            try:
                resp.decode(with_copied_body())
            except DecodeError as e:
                print(f"Decode failed ({e}); body starts with {resp.bytes()[:40]!r}")


if __name__ == "__main__":
    retry_on_5xx()
    per_request_policy()
    cancel_from_thread()
    dump_body_on_decode_error()
