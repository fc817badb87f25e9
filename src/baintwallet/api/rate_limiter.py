"""Per-sender message limits for the SMS webhook.

Each sender gets a rolling window of recent message times; a sender that
fills its window is turned away until the oldest message ages out.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

# Idle senders are forgotten once this many are tracked.
PRUNE_THRESHOLD = 1024


@dataclass
class RateBucket:
    """Message times for one sender, oldest first."""

    max_count: int
    window_seconds: float
    clock: Callable[[], float] = time.monotonic
    hits: deque[float] = field(default_factory=deque)

    def _expire(self, now: float) -> None:
        while self.hits and self.hits[0] <= now - self.window_seconds:
            self.hits.popleft()

    def try_acquire(self) -> bool:
        now = self.clock()
        self._expire(now)
        if len(self.hits) >= self.max_count:
            return False
        self.hits.append(now)
        return True

    def remaining(self) -> int:
        self._expire(self.clock())
        return max(0, self.max_count - len(self.hits))

    def retry_after(self) -> float:
        """Seconds until another message would be accepted (0 if now)."""
        now = self.clock()
        self._expire(now)
        if len(self.hits) < self.max_count:
            return 0.0
        return self.hits[0] + self.window_seconds - now


class RateLimiter:
    """Buckets keyed by sender, created on first message."""

    def __init__(
        self,
        max_count: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_count = max_count
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: dict[str, RateBucket] = {}

    def _bucket(self, key: str) -> RateBucket:
        if key not in self._buckets:
            self._buckets[key] = RateBucket(self.max_count, self.window_seconds, self._clock)
        return self._buckets[key]

    def check_and_record(self, key: str) -> bool:
        """Count one message from *key*. False means it is over the limit."""
        if key not in self._buckets and len(self._buckets) >= PRUNE_THRESHOLD:
            self.prune()
        return self._bucket(key).try_acquire()

    def remaining(self, key: str) -> int:
        return self._bucket(key).remaining()

    def retry_after(self, key: str) -> float:
        return self._bucket(key).retry_after()

    def prune(self) -> int:
        """Drop buckets with nothing left in their window. Returns how many."""
        idle = [key for key, bucket in self._buckets.items() if bucket.remaining() == self.max_count]
        for key in idle:
            del self._buckets[key]
        return len(idle)
