from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future
from typing import Any, Callable, TypeVar

from lyric_atlas.errors import RequestTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """
    Cooperative cancellation carrying a wall-clock budget.

    Passed down through every call layer; long operations poll `cancelled`
    or sleep through `wait()` so they wake up as soon as the request is over.
    """

    def __init__(self, timeout_s: float | None = None, *, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._deadline = clock() + timeout_s if timeout_s is not None else None
        self._event = threading.Event()
        self.reason: str | None = None

    def remaining(self) -> float | None:
        """Seconds left, None when unbounded. Never negative."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds` (capped by the budget). True if cancelled meanwhile."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled

    def raise_if_cancelled(self, what: str = "request") -> None:
        if self.cancelled:
            raise RequestTimeout(f"{what} aborted: {self.reason or 'deadline exceeded'}")

    def cap(self, timeout_s: float) -> float:
        remaining = self.remaining()
        if remaining is None:
            return timeout_s
        return min(timeout_s, remaining)


class OutboundGate:
    """Process-wide permit pool for in-flight network calls."""

    _POLL_S = 0.05

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._sem = threading.BoundedSemaphore(limit)

    def acquire(self, token: CancelToken | None = None) -> None:
        if token is None:
            self._sem.acquire()
            return
        while True:
            token.raise_if_cancelled("waiting for an outbound slot")
            if self._sem.acquire(timeout=self._POLL_S):
                return

    def release(self) -> None:
        self._sem.release()

    def run(self, fn: Callable[[], T], token: CancelToken | None = None) -> T:
        self.acquire(token)
        try:
            return fn()
        finally:
            self.release()


class InlineExecutor(Executor):
    """Runs work at submit() time in the caller's thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        fut: Future = Future()
        if not fut.set_running_or_notify_cancel():
            return fut
        try:
            fut.set_result(fn(*args, **kwargs))
        except BaseException as e:
            fut.set_exception(e)
        return fut


def settled(value: T) -> Future:
    """A future that is already done with `value`."""
    fut: Future = Future()
    fut.set_result(value)
    return fut
