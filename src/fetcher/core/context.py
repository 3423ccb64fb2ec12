"""
Cooperative cancellation context.

A :class:`Context` carries a cancellation signal and an optional deadline
through one logical call. Children inherit the earliest deadline of their
ancestors and are cancelled together with their parent, so a deadline set on
one request bounds its whole attempt sequence without affecting the caller.

Example:
    >>> ctx = with_timeout(background(), 5.0)
    >>> with ctx:
    ...     resp = client.execute(req, ctx=ctx)
"""

import threading
import time
import weakref
from datetime import datetime, timezone
from typing import Optional, Union

from .exceptions import CancelledError, DeadlineExceededError


class Context:
    """
    Thread-safe cancellation signal with an optional deadline.

    Deadlines are stored on the monotonic clock. Waiting never spins: waiters
    block on an event that is set by cancel() or by the parent's cancel().

    Example:
        >>> parent = background()
        >>> child = with_cancel(parent)
        >>> parent.cancel()
        >>> child.done()
        True
    """

    def __init__(self, parent: Optional['Context'] = None, deadline: Optional[float] = None):
        """
        Args:
            parent: Parent context (cancellation propagates down)
            deadline: Absolute deadline on the time.monotonic() clock
        """
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[CancelledError] = None
        self._children: 'weakref.WeakSet[Context]' = weakref.WeakSet()

        parent_deadline = parent.deadline if parent is not None else None
        if parent_deadline is not None and (deadline is None or parent_deadline < deadline):
            deadline = parent_deadline
        self._deadline = deadline

        if parent is not None:
            parent._attach(self)

    def _attach(self, child: 'Context') -> None:
        with self._lock:
            error = self._error
            if error is None:
                self._children.add(child)
        if error is not None:
            child.cancel(error)

    @property
    def deadline(self) -> Optional[float]:
        """Monotonic deadline or None."""
        return self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline (None without deadline, never negative)."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, error: Optional[CancelledError] = None) -> None:
        """
        Cancel this context and all of its children.

        Only the first call sets the error; later calls are no-ops.
        """
        with self._lock:
            if self._error is not None:
                return
            self._error = error or CancelledError()
            children = list(self._children)
            self._children.clear()
            self._event.set()

        for child in children:
            child.cancel(self._error)

    def error(self) -> Optional[CancelledError]:
        """Cancellation error, or None while the context is live."""
        if self._error is None and self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel(DeadlineExceededError())
        return self._error

    def done(self) -> bool:
        return self.error() is not None

    def raise_if_done(self) -> None:
        """Raise the cancellation error if the context is finished."""
        error = self.error()
        if error is not None:
            raise error

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block for up to ``timeout`` seconds or until the context finishes.

        Returns:
            True if the context finished (cancelled or deadline passed)
        """
        limit = timeout
        remaining = self.remaining()
        if remaining is not None and (limit is None or remaining < limit):
            limit = remaining

        if limit is None or limit > 0:
            self._event.wait(limit)
        return self.done()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Release the context like a deferred cancel."""
        self.cancel()
        return False

    def __repr__(self) -> str:
        state = type(self._error).__name__ if self._error else "active"
        return f"<Context {state} remaining={self.remaining()}>"


class _BackgroundContext(Context):
    """Shared root: never cancelled, no deadline, keeps no children."""

    def _attach(self, child: Context) -> None:
        pass

    def cancel(self, error: Optional[CancelledError] = None) -> None:
        raise RuntimeError("background context cannot be cancelled")

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


_BACKGROUND = _BackgroundContext()


def background() -> Context:
    """Root context: never cancelled, no deadline."""
    return _BACKGROUND


def with_cancel(parent: Optional[Context] = None) -> Context:
    """Child context that can be cancelled independently of its parent."""
    return Context(parent or _BACKGROUND)


def with_timeout(parent: Optional[Context], timeout: float) -> Context:
    """Child context whose deadline is ``timeout`` seconds from now."""
    return Context(parent or _BACKGROUND, deadline=time.monotonic() + timeout)


def with_deadline(parent: Optional[Context], deadline: Union[datetime, float]) -> Context:
    """
    Child context with an absolute deadline.

    Args:
        parent: Parent context (None = background)
        deadline: datetime (naive values are taken as UTC) or a time.monotonic() value
    """
    return Context(parent or _BACKGROUND, deadline=to_monotonic(deadline))


def to_monotonic(deadline: Union[datetime, float]) -> float:
    """Convert a wall-clock datetime to the monotonic clock."""
    if isinstance(deadline, datetime):
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        delta = (deadline - datetime.now(timezone.utc)).total_seconds()
        return time.monotonic() + delta
    return float(deadline)
