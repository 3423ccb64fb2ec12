"""
Pool of reusable byte buffers.

Buffers back encoded request payloads, Response.bytes() and the tee copy kept
by decode. Pooling only saves allocations; correctness never depends on it.
"""

import io
import threading
from typing import List, Set


class BufferPool:
    """
    Thread-safe LIFO pool of io.BytesIO buffers.

    Released buffers are emptied and rewound. A buffer is owned by exactly one
    caller between acquire() and release(); releasing a buffer that is already
    idle in the pool is ignored.

    Example:
        >>> pool = BufferPool()
        >>> buf = pool.acquire()
        >>> buf.write(b"payload")
        7
        >>> pool.release(buf)
    """

    def __init__(self, max_idle: int = 64):
        """
        Args:
            max_idle: Max idle buffers kept; extra released buffers are dropped
        """
        if max_idle < 0:
            raise ValueError("max_idle must be non-negative")
        self.max_idle = max_idle
        self._idle: List[io.BytesIO] = []
        self._idle_ids: Set[int] = set()
        self._lock = threading.Lock()

    def acquire(self) -> io.BytesIO:
        with self._lock:
            if self._idle:
                buf = self._idle.pop()
                self._idle_ids.discard(id(buf))
                return buf
        return io.BytesIO()

    def release(self, buf: io.BytesIO) -> None:
        if buf.closed:
            return
        buf.seek(0)
        buf.truncate()

        with self._lock:
            if id(buf) in self._idle_ids:
                return
            if len(self._idle) >= self.max_idle:
                return
            self._idle.append(buf)
            self._idle_ids.add(id(buf))

    @property
    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)


_default_pool = BufferPool()


def get_default_pool() -> BufferPool:
    """Process-wide pool used when a client is not given its own."""
    return _default_pool
