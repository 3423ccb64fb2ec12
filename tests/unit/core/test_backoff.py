"""Тесты backoff стратегий."""

import pytest

from fetcher.core.backoff import (
    DEFAULT_BACKOFF,
    MIN_JITTERED_DELAY,
    ExponentialBackoff,
    LinearBackoff,
    NoBackoff,
    jitter,
    normalize_delay,
)


def test_no_backoff_constant():
    """Одна и та же пауза на любой попытке."""
    backoff = NoBackoff(delay=0.25)
    assert [backoff.wait_duration(i) for i in (1, 2, 10, 100)] == [0.25] * 4


def test_no_backoff_rejects_negative():
    with pytest.raises(ValueError):
        NoBackoff(delay=-1)


def test_linear_without_jitter():
    """min + interval * (attempt - 1), зажато в [min, max]."""
    backoff = LinearBackoff(interval=0.5, min=1.0, max=2.5)
    assert [backoff.wait_duration(i) for i in range(1, 6)] == [1.0, 1.5, 2.0, 2.5, 2.5]


def test_exponential_without_jitter():
    """min * 2^(attempt - 1), зажато в [min, max]."""
    backoff = ExponentialBackoff(min=1.0, max=30.0)
    assert [backoff.wait_duration(i) for i in range(1, 8)] == [1, 2, 4, 8, 16, 30, 30]


def test_exponential_huge_attempt_clamped():
    """Переполнение на огромном номере попытки даёт max."""
    backoff = ExponentialBackoff(min=1.0, max=5.0)
    assert backoff.wait_duration(5000) == 5.0


@pytest.mark.parametrize("backoff", [
    LinearBackoff(interval=1.0, min=0.5, max=4.0, jitter=True),
    ExponentialBackoff(min=0.5, max=4.0, jitter=True),
    DEFAULT_BACKOFF,
])
def test_jittered_stays_within_bounds(backoff):
    for attempt in range(1, 12):
        for _ in range(50):
            delay = backoff.wait_duration(attempt)
            assert backoff.min <= delay <= backoff.max


def test_jitter_range():
    for _ in range(200):
        delay = jitter(3.0)
        assert 2.0 <= delay <= 4.0


def test_jitter_never_zero():
    assert jitter(0.0) == MIN_JITTERED_DELAY


def test_normalize_delay():
    assert normalize_delay(0.1, 1.0, 5.0) == 1.0
    assert normalize_delay(9.0, 1.0, 5.0) == 5.0
    assert normalize_delay(3.0, 1.0, 5.0) == 3.0


def test_bounds_validation():
    with pytest.raises(ValueError):
        ExponentialBackoff(min=5.0, max=1.0)
    with pytest.raises(ValueError):
        LinearBackoff(interval=-1.0, min=0.0, max=1.0)


def test_default_backoff():
    assert DEFAULT_BACKOFF == ExponentialBackoff(min=1.0, max=30.0, jitter=True)
