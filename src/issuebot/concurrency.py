"""Rate limiting and per-issue mutual exclusion.

- TokenBucket: classic token bucket; one token per admitted event
- KeyedRateLimiter: independent buckets per key ("owner/repo",
  "owner/repo/comment")
- IssueLocks: in-process asyncio locks keyed by issue identity

All of this assumes a single event loop; nothing here is thread-safe.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict


Clock = Callable[[], float]


@dataclass
class TokenBucket:
    """Token bucket that starts full and refills continuously.

    Args:
        capacity: Maximum number of tokens.
        refill_rate: Tokens added per second.
        clock: Monotonic time source, injectable for tests.
    """

    capacity: int
    refill_rate: float
    clock: Clock = time.monotonic
    tokens: float = field(init=False)
    last_refill: float = field(init=False)

    def __post_init__(self) -> None:
        self.tokens = float(self.capacity)
        self.last_refill = self.clock()

    def _refill(self) -> None:
        now = self.clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(float(self.capacity), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available. Never waits."""
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def available(self) -> int:
        self._refill()
        return int(self.tokens)


class KeyedRateLimiter:
    """One token bucket per key.

    A key gets max_requests tokens, refilled evenly over window_seconds.

    Example:
        >>> limiter = KeyedRateLimiter(max_requests=100, window_seconds=900)
        >>> limiter.try_acquire("octo/repo")
        True
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Clock = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}

    def _bucket(self, key: str) -> TokenBucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(
                capacity=self.max_requests,
                refill_rate=self.max_requests / self.window_seconds,
                clock=self._clock,
            )
            self._buckets[key] = bucket
        return bucket

    def try_acquire(self, key: str) -> bool:
        return self._bucket(key).try_acquire()

    def remaining(self, key: str) -> int:
        return self._bucket(key).available()


class IssueLocks:
    """Registry of asyncio locks keyed by issue identity.

    Locks are created on demand and dropped once nobody holds or waits
    for them.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for an issue, waiting for any current holder."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
