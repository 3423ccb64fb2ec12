"""
Ограничение частоты запросов.

Разрешения выдаются по фиксированному расписанию: одно на interval =
duration / rate. Неиспользованные разрешения не накапливаются, burst нет.
"""

import logging
import math
import threading
import time
from typing import Optional

from .context import Context, background

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Ограничитель частоты, общий для всех запросов одного клиента.

    Расписание работает как тикер: первое разрешение через interval после
    запуска, следующие на сетке start + k * interval. Каждый вызов limit()
    резервирует ближайший свободный тик под локом, затем ждёт его без лока.

    Examples:
        >>> limiter = RateLimiter(rate=10, duration=1.0)  # 10 в секунду
        >>> limiter.limit(ctx)  # блокирует до следующего тика
        True
    """

    def __init__(self, rate: int = 0, duration: float = 0.0):
        """
        Args:
            rate: Сколько разрешений за duration (<= 0 - без ограничения)
            duration: Окно в секундах (<= 0 - без ограничения)
        """
        self.rate = rate
        self.duration = duration
        self._interval = duration / rate if rate > 0 and duration > 0 else 0.0

        self._lock = threading.Lock()
        self._start: Optional[float] = None
        self._last_slot: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    @property
    def interval(self) -> float:
        """Секунды между разрешениями (0 - ограничения нет)."""
        return self._interval

    @property
    def running(self) -> bool:
        """Запущен ли таймер."""
        with self._lock:
            return self._start is not None

    def _reserve_slot(self) -> float:
        """Зарезервировать ближайший тик, вернуть его monotonic время."""
        with self._lock:
            now = time.monotonic()
            if self._start is None:
                self._start = now

            ticks = math.ceil((now - self._start) / self._interval)
            slot = self._start + max(ticks, 1) * self._interval

            if self._last_slot is not None and slot < self._last_slot + self._interval:
                slot = self._last_slot + self._interval

            self._last_slot = slot
            return slot

    def limit(self, ctx: Optional[Context] = None) -> bool:
        """
        Дождаться следующего разрешения или завершения контекста.

        При отмене контекста возвращается сразу и останавливает таймер;
        следующий вызов limit() запустит его заново.

        Args:
            ctx: Контекст вызова (None - background)

        Returns:
            True если разрешение получено, False если контекст завершён
        """
        if not self.enabled:
            return True

        ctx = ctx or background()
        slot = self._reserve_slot()
        delay = slot - time.monotonic()

        if delay > 0:
            cancelled = ctx.wait(delay)
        else:
            cancelled = ctx.done()

        if cancelled:
            logger.debug("Rate limit wait abandoned: %s", ctx.error())
            self.stop()
            return False

        return True

    def stop(self) -> None:
        """Остановить таймер. Безопасно вызывать повторно."""
        with self._lock:
            self._start = None

    def __repr__(self) -> str:
        return f"RateLimiter(rate={self.rate}, duration={self.duration})"
