"""Per-client daily verification quota (in-memory sliding window)."""
from __future__ import annotations

import logging
import math
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

logger = logging.getLogger(__name__)

LIMIT_MESSAGE = "Daily verification limit reached. Try again tomorrow."


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int

    def headers(self) -> Dict[str, str]:
        return {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
        }


class RateLimitExceeded(Exception):
    def __init__(self, status: RateLimitStatus) -> None:
        super().__init__(LIMIT_MESSAGE)
        self.status = status


class SlidingWindowLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _prune(self, bucket: Deque[float], now: float) -> None:
        while bucket and now - bucket[0] >= self.window_seconds:
            bucket.popleft()

    def _sweep(self, now: float) -> None:
        for key in list(self._buckets):
            self._prune(self._buckets[key], now)
            if not self._buckets[key]:
                del self._buckets[key]
        self._last_sweep = now

    def hit(self, key: str) -> RateLimitStatus:
        """Record one request for ``key`` unless its quota is already spent."""
        with self._lock:
            now = self._clock()
            # Clients that went quiet are dropped once per window
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            bucket = self._buckets[key]
            self._prune(bucket, now)
            allowed = len(bucket) < self.max_requests
            if allowed:
                bucket.append(now)
            if bucket:
                reset = math.ceil(self.window_seconds - (now - bucket[0]))
            else:
                del self._buckets[key]
                reset = self.window_seconds
            return RateLimitStatus(
                allowed=allowed,
                limit=self.max_requests,
                remaining=max(self.max_requests - len(bucket), 0),
                reset_seconds=max(reset, 0),
            )
