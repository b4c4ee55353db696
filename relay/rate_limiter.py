"""Per-user send limiting for the relay: sliding window plus cooldown"""
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class UserWindow:
    timestamps: deque[float] = field(default_factory=deque)
    blocked_until: float | None = None


class RateLimiter:
    """In-memory sliding-window limiter for chat sends

    A user may send `messages_per_window` messages per `window_seconds`.
    Exceeding it blocks the user for `cooldown_seconds`.
    """

    def __init__(
        self,
        messages_per_window: int = 5,
        window_seconds: float = 1.0,
        cooldown_seconds: float = 2.0,
        now: Callable[[], float] = time.monotonic,
    ) -> None:
        self.messages_per_window = messages_per_window
        self.window_seconds = window_seconds
        self.cooldown_seconds = cooldown_seconds
        self.now = now
        self.user_windows: dict[str, UserWindow] = {}

    def check(self, user_id: str) -> str | None:
        """Record a send attempt; returns an error message when it is refused"""
        now = self.now()
        window = self.user_windows.setdefault(user_id, UserWindow())

        if window.blocked_until is not None:
            if now < window.blocked_until:
                retry_after = int(window.blocked_until - now) + 1
                return f"Rate limited. Try again in {retry_after} second(s)."
            # Cooldown expired, start over
            window.blocked_until = None
            window.timestamps.clear()

        cutoff = now - self.window_seconds
        while window.timestamps and window.timestamps[0] <= cutoff:
            window.timestamps.popleft()

        if len(window.timestamps) < self.messages_per_window:
            window.timestamps.append(now)
            return None
        window.blocked_until = now + self.cooldown_seconds
        return f"Too many messages. Try again in {self.cooldown_seconds:g} second(s)."

    def is_blocked(self, user_id: str) -> bool:
        window = self.user_windows.get(user_id)
        return window is not None and window.blocked_until is not None and self.now() < window.blocked_until

    def reset_user(self, user_id: str) -> None:
        self.user_windows.pop(user_id, None)

    def cleanup_idle(self, max_idle_seconds: float = 3600) -> int:
        """Forget users with no sends in max_idle_seconds; returns how many were dropped"""
        now = self.now()
        idle = [
            user_id
            for user_id, window in self.user_windows.items()
            if not window.timestamps or now - window.timestamps[-1] > max_idle_seconds
        ]
        for user_id in idle:
            del self.user_windows[user_id]
        return len(idle)
