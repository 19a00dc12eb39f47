"""Admin API throttling (token bucket) and a small TTL response cache."""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TokenBucketRateLimiter:
    """
    Token bucket limiter for Admin API calls.

    Shopify's REST Admin API allows a burst (the bucket size) and then a
    steady leak rate per store. Callers await :meth:`acquire` before each
    request and are delayed only once the burst is spent.
    """

    def __init__(self, rate: float, burst_size: int):
        """
        Args:
            rate: Tokens added per second (requests per second)
            burst_size: Maximum tokens in the bucket
        """
        self.rate = rate
        self.burst_size = burst_size
        self.tokens = float(burst_size)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.burst_size, self.tokens + (now - self.last_update) * self.rate)
        self.last_update = now

    async def acquire(self, tokens: int = 1) -> None:
        """Take ``tokens`` from the bucket, sleeping until enough have leaked in."""
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                wait_time = (tokens - self.tokens) / self.rate
                logger.debug("Rate limit reached, waiting %.2fs", wait_time)
                await asyncio.sleep(wait_time)

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take ``tokens`` if available right now; never waits."""
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False


class TTLCache:
    """Time-bounded cache of Admin API GET responses keyed by request."""

    def __init__(self, ttl: int):
        self.ttl = ttl
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if time.monotonic() - stored_at > self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (time.monotonic(), value)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; returns how many."""
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
