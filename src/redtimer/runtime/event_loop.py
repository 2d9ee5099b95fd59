"""Single-threaded event loop running the session."""

import heapq
import itertools
import logging
import queue
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle for a call scheduled with EventLoop.call_later()."""

    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        """Cancel the call. Safe to call more than once."""
        self.cancelled = True


class EventLoop:
    """Run callables and timers on one control thread.

    ``call_soon`` may be used from any thread; everything else belongs to
    the thread running ``run()``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """Initialize event loop.

        Args:
            clock: Monotonic clock in seconds
        """
        self._clock = clock
        self._ready: "queue.Queue[tuple[Callable[..., Any], tuple[Any, ...]]]" = queue.Queue()
        self._timers: list[tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()
        self._stop_event = threading.Event()
        self._thread_id: Optional[int] = None

    @property
    def is_running(self) -> bool:
        """Check if the loop is running."""
        return self._thread_id is not None

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue a call for the control thread. Thread-safe."""
        self._ready.put((callback, args))

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Schedule a call after delay seconds.

        Args:
            delay: Delay in seconds
            callback: Callable to run
            *args: Arguments for the callable

        Returns:
            Handle that can cancel the call
        """
        handle = TimerHandle(self._clock() + delay, callback, args)
        heapq.heappush(self._timers, (handle.when, next(self._sequence), handle))
        return handle

    def run(self) -> None:
        """Run until stop() is called."""
        self._thread_id = threading.get_ident()
        self._stop_event.clear()
        logger.debug("Event loop started")
        try:
            while not self._stop_event.is_set():
                self._run_once()
        finally:
            self._thread_id = None
            logger.debug("Event loop stopped")

    def stop(self) -> None:
        """Stop the loop after the current iteration. Thread-safe."""
        self._stop_event.set()
        # Wake up a loop blocked on an empty queue
        self._ready.put((lambda: None, ()))

    def _run_once(self) -> None:
        now = self._clock()
        while self._timers and self._timers[0][0] <= now:
            _, _, handle = heapq.heappop(self._timers)
            if not handle.cancelled:
                self._invoke(handle.callback, handle.args)

        timeout = None
        if self._timers:
            timeout = max(0.0, self._timers[0][0] - self._clock())

        try:
            callback, args = self._ready.get(timeout=timeout)
        except queue.Empty:
            return
        self._invoke(callback, args)

        # Drain whatever else is ready without blocking
        while not self._stop_event.is_set():
            try:
                callback, args = self._ready.get_nowait()
            except queue.Empty:
                break
            self._invoke(callback, args)

    def _invoke(self, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.exception(f"Error in event loop callback {callback!r}: {e}")
