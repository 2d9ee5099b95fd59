"""Runtime support: event loop and application wiring."""

from redtimer.runtime.event_loop import EventLoop, TimerHandle

__all__ = ["EventLoop", "TimerHandle"]
