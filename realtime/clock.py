"""Clock abstraction so timers can be driven deterministically in tests"""
import asyncio
import heapq
import itertools
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class LoopClock:
    """Clock backed by the running asyncio event loop"""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback, *args)


class ManualTimer:
    def __init__(self, deadline: float, callback: Callable[..., Any], args: tuple) -> None:
        self.deadline = deadline
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Clock that only moves when advance() is called

    Callbacks run synchronously inside advance(), in deadline order, with
    now() set to each timer's deadline while it runs.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._timers: list[tuple[float, int, ManualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._timers, (timer.deadline, next(self._seq), timer))
        return timer

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while self._timers and self._timers[0][0] <= target:
            deadline, _, timer = heapq.heappop(self._timers)
            if timer.cancelled:
                continue
            self._now = deadline
            timer.callback(*timer.args)
        self._now = target

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers"""
        return sum(1 for _, _, t in self._timers if not t.cancelled)
