"""In-memory sliding-window rate limiting for import requests."""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict, deque
from typing import DefaultDict, Deque


class RateLimiter:
    """Sliding-window limiter keyed by caller, guarded by an asyncio lock."""

    def __init__(self, clock=time.monotonic) -> None:
        self._attempts: DefaultDict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._clock = clock

    async def is_allowed(self, key: str, max_requests: int, window_seconds: int) -> bool:
        """Return True and record the attempt when the key is under its limit."""
        async with self._lock:
            now = self._clock()
            window_start = now - window_seconds
            bucket = self._attempts[key]

            while bucket and bucket[0] <= window_start:
                bucket.popleft()

            if len(bucket) >= max_requests:
                return False

            bucket.append(now)
            return True

    def reset(self) -> None:
        self._attempts.clear()


rate_limiter = RateLimiter()
