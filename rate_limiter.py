import time
from typing import Callable, Dict, Protocol, Tuple

WINDOW_SECONDS = 60.0


class RateLimiter(Protocol):
    def check(self, key: str) -> bool: ...


class FixedWindowRateLimiter:
    """
    Allows ``requests_per_minute`` calls per key in each one-minute window.
    State lives on the instance; share one limiter per process (or replace it
    with a store-backed implementation when running several).
    """

    def __init__(self, requests_per_minute: int, clock: Callable[[], float] = time.monotonic):
        self.requests_per_minute = requests_per_minute
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def check(self, key: str) -> bool:
        now = self._clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= WINDOW_SECONDS:
            started, count = now, 0
        if count >= self.requests_per_minute:
            self._windows[key] = (started, count)
            return False
        self._windows[key] = (started, count + 1)
        self._prune(now)
        return True

    def _prune(self, now: float) -> None:
        if len(self._windows) < 1024:
            return
        expired = [k for k, (started, _) in self._windows.items() if now - started >= WINDOW_SECONDS]
        for key in expired:
            del self._windows[key]


class NoRateLimit:
    def check(self, key: str) -> bool:
        return True
