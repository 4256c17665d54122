# boards/ratelimit.py

import asyncio
import logging
import time
from collections import deque

log = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter: at most ``max_requests`` admissions per ``window`` seconds.

    Every caller goes through one lock, so admissions are serialized in
    arrival order and a caller waiting for quota suspends instead of spinning.
    """

    def __init__(self, max_requests: int, window: float, name: str = "board"):
        if max_requests <= 0 or window <= 0:
            raise ValueError("max_requests and window must be positive")

        self.name = name
        self.max_requests = max_requests
        self.window = window

        # Timestamps of the admissions still inside the window
        self._req_times: deque = deque()
        self._lock = asyncio.Lock()

    def _purge(self, now: float) -> None:
        while self._req_times and self._req_times[0] <= now - self.window:
            self._req_times.popleft()

    @property
    def in_window(self) -> int:
        """Number of admissions currently counted against the quota."""
        self._purge(time.monotonic())
        return len(self._req_times)

    async def acquire(self) -> None:
        """Wait until the quota admits one more request, then record it."""
        async with self._lock:
            now = time.monotonic()
            self._purge(now)

            if len(self._req_times) >= self.max_requests:
                # Wait for the oldest admission to leave the window
                wait = self.window - (now - self._req_times[0])
                log.warning(f"{self.name} rate limit reached, waiting {wait:.1f}s")
                await asyncio.sleep(wait)
                self._req_times.popleft()

            self._req_times.append(time.monotonic())

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False
