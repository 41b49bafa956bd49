"""Rate limiting for the proxy routes and outbound vendor calls.

Implements:
- Sliding-window limiter that waits for a free slot (outbound calls)
- Fixed-window limiter that refuses instead of waiting (proxy routes)
- Per-key fixed-window limiter (per wallet address)
- Minimum-interval cooldown between consecutive calls
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

log = structlog.get_logger()


class SlidingWindowRateLimiter:
    """Sliding-window limiter that blocks until a request slot frees up.

    Example:
        >>> limiter = SlidingWindowRateLimiter(max_requests=10, time_window=1.0)
        >>> async with limiter:
        ...     await client.get_address_nfts(address)
    """

    def __init__(
        self,
        max_requests: int,
        time_window: float,
        name: str = "default",
    ) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed in time window
            time_window: Time window in seconds
            name: Name for logging
        """
        self.max_requests = max_requests
        self.time_window = time_window
        self.name = name
        self.requests: deque[float] = deque()
        self.lock = asyncio.Lock()
        self._total_waited = 0.0

    async def acquire(self) -> None:
        """Acquire permission to make a request.

        Blocks if rate limit would be exceeded.
        """
        async with self.lock:
            now = time.monotonic()

            while self.requests and self.requests[0] < now - self.time_window:
                self.requests.popleft()

            if len(self.requests) >= self.max_requests:
                sleep_time = self.time_window - (now - self.requests[0])
                if sleep_time > 0:
                    log.debug(
                        "rate_limit.waiting",
                        limiter=self.name,
                        sleep_time=sleep_time,
                        current_requests=len(self.requests),
                    )
                    await asyncio.sleep(sleep_time)
                    self._total_waited += sleep_time
                self.requests.popleft()

            self.requests.append(time.monotonic())

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    def get_stats(self) -> dict[str, float | str]:
        return {
            "name": self.name,
            "max_requests": self.max_requests,
            "time_window": self.time_window,
            "current_requests": len(self.requests),
            "total_waited": self._total_waited,
        }


class FixedWindowRateLimiter:
    """Fixed-window limiter that refuses excess requests instead of waiting.

    A new window opens once more than ``time_window`` seconds passed since
    the current one started. Every call counts, refused ones included.

    Example:
        >>> limiter = FixedWindowRateLimiter(max_requests=2, time_window=10.0)
        >>> if not limiter.try_acquire():
        ...     raise RateLimitExceededError()
    """

    def __init__(
        self,
        max_requests: int,
        time_window: float,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.time_window = time_window
        self.name = name
        self._clock = clock
        self._window_start = 0.0
        self._count = 0
        self._started = False
        self.rejected = 0

    def try_acquire(self) -> bool:
        now = self._clock()
        if not self._started or now - self._window_start > self.time_window:
            self._started = True
            self._window_start = now
            self._count = 0

        self._count += 1
        if self._count > self.max_requests:
            self.rejected += 1
            log.info(
                "rate_limit.rejected",
                limiter=self.name,
                count=self._count,
                max_requests=self.max_requests,
            )
            return False
        return True

    def get_stats(self) -> dict[str, float | str]:
        return {
            "name": self.name,
            "max_requests": self.max_requests,
            "time_window": self.time_window,
            "current_requests": self._count,
            "rejected": self.rejected,
        }


@dataclass
class _KeyWindow:
    count: int
    reset_time: float


class KeyedRateLimiter:
    """Fixed-window limiter keeping a separate window per key.

    A key's window ends ``time_window`` seconds after it opened. Refused
    requests are not counted.

    Example:
        >>> limiter = KeyedRateLimiter(max_requests=5, time_window=60.0)
        >>> limiter.try_acquire(wallet.lower())
        True
    """

    def __init__(
        self,
        max_requests: int,
        time_window: float,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.time_window = time_window
        self.name = name
        self._clock = clock
        self._windows: dict[str, _KeyWindow] = {}

    def try_acquire(self, key: str) -> bool:
        now = self._clock()
        window = self._windows.get(key)
        if window is None:
            window = _KeyWindow(count=0, reset_time=now + self.time_window)
            self._windows[key] = window

        if now > window.reset_time:
            window.count = 0
            window.reset_time = now + self.time_window

        if window.count >= self.max_requests:
            log.warning("rate_limit.key_rejected", limiter=self.name, key=key)
            return False

        window.count += 1
        return True

    def usage(self, key: str) -> int:
        window = self._windows.get(key)
        return window.count if window else 0

    def get_all_stats(self) -> dict[str, dict[str, float]]:
        return {
            key: {"count": w.count, "reset_time": w.reset_time}
            for key, w in self._windows.items()
        }


class Cooldown:
    """Keep consecutive calls at least ``interval`` seconds apart.

    Example:
        >>> cooldown = Cooldown(interval=2.0)
        >>> await cooldown.wait()
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    async def wait(self) -> float:
        """Sleep until the interval since the previous call has passed.

        Returns:
            Seconds waited
        """
        waited = 0.0
        if self._last is not None:
            elapsed = self._clock() - self._last
            if elapsed < self.interval:
                waited = self.interval - elapsed
                await self._sleep(waited)
        self._last = self._clock()
        return waited
