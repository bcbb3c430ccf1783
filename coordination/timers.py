# coordination/timers.py
"""
Clock and timer capabilities injected into the event coordinator.

Production code uses the monotonic clock and the running asyncio loop;
tests pass a fake clock and a scheduler whose timers fire on demand.
"""
import asyncio
import time
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Clock = Callable[[], float]
Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def monotonic_clock() -> float:
    return time.monotonic()


def asyncio_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Run ``callback`` after ``delay`` seconds on the running event loop."""
    return asyncio.get_running_loop().call_later(delay, callback)
