"""
Process-wide request pacing for the xbill API.

Every synchronizer in a run shares one limiter. Requests draw from a token
bucket, and a 429 answered to any caller opens a pause window that holds
back every caller, so concurrent stages cannot burn each other's budget.
"""

import asyncio
import time


class RateLimiter:
    """
    Token bucket with a shared 429 pause window.

    Example:
        limiter = RateLimiter(rate=5.0, burst=5)
        await limiter.acquire()   # waits for a token (and for any pause)
        limiter.pause(4.0)        # every caller holds off for 4s
    """

    def __init__(self, rate: float, burst: int = 1):
        """
        Args:
            rate: Tokens added per second
            burst: Bucket capacity
        """
        if rate <= 0:
            raise ValueError("Rate must be positive")
        if burst < 1:
            raise ValueError("Burst must be at least 1")

        self.rate = rate
        self.burst = burst
        self.tokens = float(burst)
        self.refilled_at = time.monotonic()
        self.resume_at = 0.0
        self.pause_count = 0
        self.lock = asyncio.Lock()

    def _refill(self, now: float) -> None:
        self.tokens = min(float(self.burst), self.tokens + (now - self.refilled_at) * self.rate)
        self.refilled_at = now

    async def acquire(self) -> None:
        """Take one token, sleeping through any pause window and any token deficit."""
        async with self.lock:
            paused_for = self.resume_at - time.monotonic()
            if paused_for > 0:
                await asyncio.sleep(paused_for)

            self._refill(time.monotonic())
            deficit = 1.0 - self.tokens
            if deficit > 0:
                await asyncio.sleep(deficit / self.rate)
                self._refill(time.monotonic())
            self.tokens = max(self.tokens - 1.0, 0.0)

    def pause(self, seconds: float) -> None:
        """Hold back all callers for at least ``seconds``."""
        if seconds <= 0:
            return
        self.resume_at = max(self.resume_at, time.monotonic() + seconds)
        self.pause_count += 1

    def is_paused(self) -> bool:
        return self.resume_at > time.monotonic()

    def reset(self) -> None:
        """Refill the bucket and lift any pause (pause_count is kept)."""
        self.tokens = float(self.burst)
        self.refilled_at = time.monotonic()
        self.resume_at = 0.0
