"""
Backoff стратегии для повторных попыток.

Каждая стратегия - чистая функция номера попытки. Номер 1-based и считает
уже сделанные попытки: wait_duration(1) - пауза перед второй попыткой.

Включает:
- NoBackoff: фиксированная пауза
- LinearBackoff: min + interval * (attempt - 1)
- ExponentialBackoff: min * 2^(attempt - 1)
- Jitter +/-33% для linear и exponential
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

# Наименьшая пауза после jitter (1 наносекунда)
MIN_JITTERED_DELAY = 1e-9


class BackoffStrategy(ABC):
    """Определяет, сколько ждать перед следующей попыткой."""

    @abstractmethod
    def wait_duration(self, attempt: int) -> float:
        """
        Args:
            attempt: Сколько попыток уже сделано (>= 1)

        Returns:
            Секунды ожидания перед следующей попыткой
        """


@dataclass(frozen=True)
class NoBackoff(BackoffStrategy):
    """
    Одинаковая пауза независимо от номера попытки.

    Examples:
        >>> NoBackoff(delay=0.5).wait_duration(7)
        0.5
    """
    delay: float = 0.0

    def __post_init__(self):
        if self.delay < 0:
            raise ValueError("delay must be non-negative")

    def wait_duration(self, attempt: int) -> float:
        return self.delay


@dataclass(frozen=True)
class LinearBackoff(BackoffStrategy):
    """
    Пауза растёт на interval с каждой попыткой.

    Examples:
        >>> b = LinearBackoff(interval=1.0, min=1.0, max=5.0)
        >>> [b.wait_duration(i) for i in range(1, 7)]
        [1.0, 2.0, 3.0, 4.0, 5.0, 5.0]
    """
    interval: float
    min: float
    max: float
    jitter: bool = False

    def __post_init__(self):
        _validate_bounds(self.min, self.max)
        if self.interval < 0:
            raise ValueError("interval must be non-negative")

    def wait_duration(self, attempt: int) -> float:
        # ожидание бывает только перед ретраем, поэтому считаем с нуля
        attempt -= 1
        delay = self.min + self.interval * attempt

        if self.jitter:
            delay = jitter(delay)

        return normalize_delay(delay, self.min, self.max)


@dataclass(frozen=True)
class ExponentialBackoff(BackoffStrategy):
    """
    Пауза удваивается с каждой попыткой.

    Examples:
        >>> b = ExponentialBackoff(min=1.0, max=30.0)
        >>> [b.wait_duration(i) for i in range(1, 7)]
        [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
    """
    min: float
    max: float
    jitter: bool = False

    def __post_init__(self):
        _validate_bounds(self.min, self.max)

    def wait_duration(self, attempt: int) -> float:
        attempt -= 1
        try:
            delay = self.min * (2 ** attempt)
        except OverflowError:
            delay = self.max

        if self.jitter:
            delay = jitter(delay)

        return normalize_delay(delay, self.min, self.max)


def jitter(base_delay: float) -> float:
    """
    Сдвинуть паузу на случайную величину в пределах +/-33%.

    Args:
        base_delay: Исходная пауза (сек)

    Returns:
        Пауза с jitter, не меньше MIN_JITTERED_DELAY
    """
    max_jitter = base_delay / 3
    delay = base_delay + random.uniform(-max_jitter, max_jitter)

    if delay <= 0:
        delay = MIN_JITTERED_DELAY

    return delay


def normalize_delay(base_delay: float, min_delay: float, max_delay: float) -> float:
    """Зажать паузу в [min_delay, max_delay]."""
    if base_delay > max_delay:
        return max_delay

    if base_delay < min_delay:
        return min_delay

    return base_delay


def _validate_bounds(min_delay: float, max_delay: float) -> None:
    if min_delay < 0:
        raise ValueError("min must be non-negative")
    if max_delay < min_delay:
        raise ValueError("max must be >= min")


DEFAULT_BACKOFF = ExponentialBackoff(min=1.0, max=30.0, jitter=True)
