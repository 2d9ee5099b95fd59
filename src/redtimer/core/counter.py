"""Elapsed-time counter driven by a periodic tick."""

import logging
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    """Handle returned by a scheduler for a pending call."""

    def cancel(self) -> None:
        """Cancel the pending call."""
        ...


class Scheduler(Protocol):
    """Anything that can run a callable later on the control thread."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Schedule callback after delay seconds."""
        ...


def format_duration(seconds: int) -> str:
    """Format counter seconds as HH:MM:SS."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class ElapsedCounter:
    """Count seconds while running.

    The counter never goes below zero and is only advanced by ``tick``.
    """

    INTERVAL = 1.0

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Optional[Callable[[int], None]] = None,
        interval: float = INTERVAL,
    ):
        """Initialize counter.

        Args:
            scheduler: Scheduler used to request the next tick
            on_tick: Callback receiving the counter value after each tick
            interval: Seconds between ticks
        """
        self.scheduler = scheduler
        self.on_tick = on_tick
        self.interval = interval
        self._seconds = 0
        self._handle: Optional[TimerHandle] = None

    @property
    def seconds(self) -> int:
        """Current counter value in seconds."""
        return self._seconds

    @property
    def is_running(self) -> bool:
        """Check if the counter is ticking."""
        return self._handle is not None

    def start_timer(self) -> None:
        """Start ticking. No-op if already running."""
        if self._handle is not None:
            return
        self._handle = self.scheduler.call_later(self.interval, self.tick)
        logger.debug(f"Timer started at {self._seconds}s")

    def stop_timer(self) -> None:
        """Stop ticking. No-op if already stopped."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.debug(f"Timer stopped at {self._seconds}s")

    def tick(self) -> None:
        """Advance the counter by one interval and schedule the next tick."""
        if self._handle is None:
            # Late tick after stop_timer()
            return
        self._seconds += int(self.interval)
        self._handle = self.scheduler.call_later(self.interval, self.tick)
        if self.on_tick:
            self.on_tick(self._seconds)

    def consume(self, seconds: int) -> None:
        """Remove seconds that have been saved remotely.

        Args:
            seconds: Saved seconds
        """
        self._seconds = max(0, self._seconds - seconds)
        if self.on_tick:
            self.on_tick(self._seconds)

    def reset(self) -> None:
        """Reset the counter to zero."""
        self._seconds = 0
        if self.on_tick:
            self.on_tick(self._seconds)
