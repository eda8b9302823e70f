import time
import asyncio


class RateLimiter:
    """
    Token bucket limiting calls to the ledger RPC endpoint.

    Public RPC nodes throttle aggressively; the indexer issues two calls per
    cycle at most, but the health endpoint shares the same client.
    """

    def __init__(self, calls_per_window: int, window_size: float):
        self._calls_per_window = calls_per_window
        self._window_size = window_size
        self._tokens = calls_per_window
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        if elapsed >= self._window_size:
            self._tokens = self._calls_per_window
            self._last_refill = now
        elif elapsed > 0:
            new_tokens = int((elapsed / self._window_size) * self._calls_per_window)
            if new_tokens > 0:
                self._tokens = min(self._calls_per_window, self._tokens + new_tokens)
                self._last_refill = now

    async def acquire(self) -> None:
        """Take a token, sleeping until one is refilled if the bucket is empty"""
        async with self._lock:
            self._refill(time.monotonic())

            if self._tokens == 0:
                time_per_token = self._window_size / self._calls_per_window
                elapsed = time.monotonic() - self._last_refill
                await asyncio.sleep(max(0.0, time_per_token - elapsed))
                self._tokens = 1
                self._last_refill = time.monotonic()

            self._tokens -= 1
