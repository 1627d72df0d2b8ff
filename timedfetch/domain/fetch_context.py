from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable, List, Optional, Union

CANCELED = "context canceled"
DEADLINE_EXCEEDED = "context deadline exceeded"

Timeout = Union[int, float, timedelta]


def to_seconds(timeout: Timeout) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class FetchContext:
    """Cancellation scope carrying an optional deadline through a call chain.

    A context is done once it is canceled, its deadline passes, or its parent
    is done, whichever comes first. Children never affect their parent.
    All methods are safe to call from any thread.
    """

    def __init__(
        self,
        parent: Optional[FetchContext] = None,
        deadline: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        timer_factory=threading.Timer,
    ):
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._err: Optional[str] = None
        self._callbacks: List[Callable[[FetchContext], None]] = []
        self._timer = None
        self._remove_from_parent: Optional[Callable[[], None]] = None
        self._clock = clock
        self._timer_factory = timer_factory

        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline

        if parent is not None:
            self._remove_from_parent = parent.add_done_callback(self._on_parent_done)
        if deadline is not None and not self.done():
            self._arm_timer(deadline - clock())

    def _arm_timer(self, remaining: float) -> None:
        if remaining <= 0:
            self._finish(DEADLINE_EXCEEDED)
            return
        timer = self._timer_factory(remaining, self._finish, args=(DEADLINE_EXCEEDED,))
        timer.daemon = True
        with self._lock:
            if self._err is not None:
                return
            self._timer = timer
        timer.start()

    def _on_parent_done(self, parent: FetchContext) -> None:
        self._finish(parent.err or CANCELED)

    def _finish(self, err: str) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            callbacks, self._callbacks = self._callbacks, []
            timer, self._timer = self._timer, None
        self._done.set()
        if timer is not None:
            timer.cancel()
        if self._remove_from_parent is not None:
            self._remove_from_parent()
        for callback in callbacks:
            callback(self)

    @property
    def deadline(self) -> Optional[float]:
        """Deadline on the context's clock (``time.monotonic`` by default), or None."""
        return self._deadline

    @property
    def err(self) -> Optional[str]:
        return self._err

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - self._clock()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def cancel(self) -> None:
        self._finish(CANCELED)

    def add_done_callback(self, callback: Callable[[FetchContext], None]) -> Callable[[], None]:
        """Run ``callback(ctx)`` once the context is done; returns a remover.

        If the context is already done the callback runs immediately.
        """
        with self._lock:
            if self._err is None:
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback(self)
        return lambda: None

    def _remove_callback(self, callback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    def with_cancel(self) -> FetchContext:
        return FetchContext(self, clock=self._clock, timer_factory=self._timer_factory)

    def with_timeout(self, timeout: Timeout) -> FetchContext:
        deadline = self._clock() + to_seconds(timeout)
        return FetchContext(self, deadline, clock=self._clock, timer_factory=self._timer_factory)

    def __enter__(self) -> FetchContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class _BackgroundContext(FetchContext):
    """Root context: never canceled, no deadline."""

    def cancel(self) -> None:
        pass

    def add_done_callback(self, callback):
        return lambda: None


_BACKGROUND = _BackgroundContext()


def background() -> FetchContext:
    return _BACKGROUND


def from_event(stop_event, parent: Optional[FetchContext] = None, poll_interval: float = 0.05) -> FetchContext:
    """Adapt a ``stop_event`` (anything with ``is_set()``) into a cancelable context.

    A daemon thread polls the event until the returned context is done.
    """
    ctx = (parent or background()).with_cancel()
    if stop_event.is_set():
        ctx.cancel()
        return ctx

    def watch():
        while not ctx.wait(poll_interval):
            if stop_event.is_set():
                ctx.cancel()
                return

    threading.Thread(target=watch, name="timedfetch-stop-event", daemon=True).start()
    return ctx
