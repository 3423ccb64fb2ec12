"""
Pytest configuration and fixtures for fetcher tests.
"""

import http.client
import io

import pytest
import requests
import responses as responses_lib
from requests.structures import CaseInsensitiveDict

from fetcher.core.buffer_pool import BufferPool
from fetcher.core.client import Client
from fetcher.core.logging.config import LoggingConfig
from fetcher.core.logging.filters import clear_correlation_id


@pytest.fixture(autouse=True)
def _reset_correlation_id():
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def base_url():
    """Base URL for testing."""
    return "https://api.example.com"


@pytest.fixture
def mock_responses():
    """Mock HTTP responses using responses library."""
    with responses_lib.RequestsMock() as rsps:
        yield rsps


@pytest.fixture
def pool():
    """Private buffer pool, so tests can count idle buffers."""
    return BufferPool()


@pytest.fixture
def client(base_url, pool):
    """Client without retries."""
    client = Client(base_url=base_url, timeout=10, buffer_pool=pool)
    yield client
    client.close()


@pytest.fixture
def make_http_response():
    """
    Factory for requests.Response objects backed by an in-memory body.

    Used as the return value of a mocked transport.
    """
    def factory(status=200, body=b"", headers=None, url="https://api.example.com/test"):
        resp = requests.Response()
        resp.status_code = status
        resp.reason = http.client.responses.get(status, "")
        resp.raw = io.BytesIO(body)
        resp.headers = CaseInsensitiveDict(headers or {})
        resp.url = url
        return resp
    return factory


@pytest.fixture
def logging_config():
    return LoggingConfig.create(
        level="DEBUG",
        enable_console=True,
        enable_file=False
    )


@pytest.fixture
def logging_config_with_file(tmp_path):
    """LoggingConfig writing JSON to a temporary file."""
    return LoggingConfig.create(
        level="DEBUG",
        format="json",
        enable_console=False,
        enable_file=True,
        file_path=str(tmp_path / "fetcher.log")
    )
