"""Per-key scheduled expiry backed by a min-heap"""
import heapq
import itertools
from typing import Callable, Generic, Hashable, TypeVar

from .clock import Clock, TimerHandle

K = TypeVar("K", bound=Hashable)


class ExpiryQueue(Generic[K]):
    """Min-heap of (deadline, key) with lazy deletion

    Re-arming a key moves its deadline; the superseded heap entry is skipped
    when it surfaces.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, K]] = []
        self._deadlines: dict[K, float] = {}
        self._seq = itertools.count()

    def arm(self, key: K, deadline: float) -> None:
        self._deadlines[key] = deadline
        heapq.heappush(self._heap, (deadline, next(self._seq), key))

    def cancel(self, key: K) -> None:
        self._deadlines.pop(key, None)

    def clear(self) -> None:
        self._heap.clear()
        self._deadlines.clear()

    def pop_due(self, now: float) -> list[K]:
        """Remove and return every key whose deadline is <= now"""
        due: list[K] = []
        while self._heap and self._heap[0][0] <= now:
            deadline, _, key = heapq.heappop(self._heap)
            if self._deadlines.get(key) == deadline:
                del self._deadlines[key]
                due.append(key)
        return due

    def next_deadline(self) -> float | None:
        while self._heap:
            deadline, _, key = self._heap[0]
            if self._deadlines.get(key) == deadline:
                return deadline
            heapq.heappop(self._heap)
        return None

    def __contains__(self, key: object) -> bool:
        return key in self._deadlines

    def __len__(self) -> int:
        return len(self._deadlines)


class ExpiryScheduler(Generic[K]):
    """ExpiryQueue wired to a Clock: calls on_expire(key) when a deadline passes

    Keeps a single clock timer aimed at the earliest live deadline.
    """

    def __init__(self, clock: Clock, on_expire: Callable[[K], None]) -> None:
        self.clock = clock
        self.on_expire = on_expire
        self._queue: ExpiryQueue[K] = ExpiryQueue()
        self._timer: TimerHandle | None = None
        self._timer_deadline: float | None = None

    def arm(self, key: K, delay: float) -> None:
        self._queue.arm(key, self.clock.now() + delay)
        self._reschedule()

    def cancel(self, key: K) -> None:
        self._queue.cancel(key)
        self._reschedule()

    def clear(self) -> None:
        self._queue.clear()
        self._reschedule()

    def __contains__(self, key: object) -> bool:
        return key in self._queue

    def _reschedule(self) -> None:
        deadline = self._queue.next_deadline()
        if deadline == self._timer_deadline:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._timer_deadline = deadline
        if deadline is not None:
            self._timer = self.clock.call_later(max(0.0, deadline - self.clock.now()), self._fire)

    def _fire(self) -> None:
        self._timer = None
        self._timer_deadline = None
        for key in self._queue.pop_due(self.clock.now()):
            self.on_expire(key)
        self._reschedule()
