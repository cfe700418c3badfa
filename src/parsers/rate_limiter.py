import asyncio
import time
from collections import deque
from collections.abc import Callable
from threading import Lock


class RateLimiter:
    """Minimum-interval limiter for async HTTP clients.

    Every ``acquire()`` waits until at least ``min_interval`` seconds have
    passed since the previous one. The wait is an ``asyncio.sleep`` so a
    cancelled task leaves the limiter untouched.
    """

    def __init__(self, max_rps: float) -> None:
        self._min_interval = 1.0 / max_rps if max_rps > 0 else 0.0
        self._last_request = 0.0
        self._lock = asyncio.Lock()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def acquire(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            wait = self._min_interval - (now - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = asyncio.get_running_loop().time()


class SlidingWindowGate:
    """Non-blocking admission control over a trailing time window.

    Admits at most ``budget`` acquisitions in any trailing ``window_sec``
    seconds. A denied ``try_acquire()`` records nothing.
    """

    def __init__(
        self,
        budget: int = 35,
        window_sec: float = 10.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if budget <= 0:
            raise ValueError("budget must be positive")
        if window_sec <= 0:
            raise ValueError("window_sec must be positive")
        self._budget = budget
        self._window = window_sec
        self._clock = clock
        self._stamps: deque[float] = deque()
        self._lock = Lock()

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def window_sec(self) -> float:
        return self._window

    def _evict(self, now: float) -> None:
        cutoff = now - self._window
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()

    def try_acquire(self) -> bool:
        with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._stamps) >= self._budget:
                return False
            self._stamps.append(now)
            return True

    def in_window(self) -> int:
        """Acquisitions currently counted against the budget."""
        with self._lock:
            self._evict(self._clock())
            return len(self._stamps)

    def clear(self) -> None:
        with self._lock:
            self._stamps.clear()
