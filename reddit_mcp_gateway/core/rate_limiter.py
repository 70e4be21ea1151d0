"""Sliding window rate limiting for Reddit read and write operations."""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any

from reddit_mcp_gateway.core.utils import now_ms

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 60_000


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single consume attempt.

    Attributes:
        ok: True if the operation was accepted.
        retry_after_ms: Milliseconds until a slot frees up (0 when accepted).
    """

    ok: bool
    retry_after_ms: int


_ACCEPTED = RateLimitResult(ok=True, retry_after_ms=0)


class SlidingWindowRateLimiter:
    """Sliding window rate limiter.

    Records the timestamp of every accepted operation and allows at most
    `limit` of them inside any trailing window of `window_ms` milliseconds.
    Entries are evicted from the front in arrival order, so pruning is
    amortized O(1) per call and the queue never holds more than `limit`
    entries between calls.

    Example:
        limiter = SlidingWindowRateLimiter(limit=60, window_ms=60_000)
        result = limiter.consume()
        if not result.ok:
            print(f"retry in {result.retry_after_ms}ms")

    Thread Safety:
        consume() and count() are serialized by an internal lock.
    """

    def __init__(self, limit: int, window_ms: int = DEFAULT_WINDOW_MS) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum accepted operations per window.
            window_ms: Window length in milliseconds.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.limit = limit
        self.window_ms = window_ms
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        """Drop entries that left the window (must be called with lock held).

        An entry exactly `window_ms` old is already expired.
        """
        timestamps = self._timestamps
        while timestamps and now - timestamps[0] >= self.window_ms:
            timestamps.popleft()

    def consume(self, now: float | None = None) -> RateLimitResult:
        """Try to record one operation at `now`.

        Args:
            now: Timestamp in milliseconds (defaults to wall clock). Callers
                must supply non-decreasing values.

        Returns:
            RateLimitResult; on rejection retry_after_ms is at least 1.
        """
        if now is None:
            now = now_ms()
        with self._lock:
            self._prune(now)
            if len(self._timestamps) >= self.limit:
                if not self._timestamps:
                    return RateLimitResult(ok=False, retry_after_ms=self.window_ms)
                oldest = self._timestamps[0]
                wait = max(self.window_ms - (now - oldest), 1)
                return RateLimitResult(ok=False, retry_after_ms=math.ceil(wait))

            self._timestamps.append(now)
            return _ACCEPTED

    def count(self, now: float | None = None) -> int:
        """Number of accepted operations still inside the window."""
        if now is None:
            now = now_ms()
        with self._lock:
            self._prune(now)
            return len(self._timestamps)


class RedditRatePolicy:
    """Read and write rate limits plus a minimum spacing between writes.

    Reads and writes are counted in separate one-minute windows. Writes must
    additionally be at least `min_write_interval_ms` apart; that gate is
    checked first and never touches the write window when it rejects.

    Thread Safety:
        check_write() holds a lock across the spacing gate and the write
        window, so concurrent writers cannot both pass the gate.

    Example:
        policy = RedditRatePolicy(read_per_minute=60, write_per_minute=6,
                                  min_write_interval_ms=5000)
        if policy.check_write().ok:
            ...
    """

    def __init__(
        self,
        read_per_minute: int,
        write_per_minute: int,
        min_write_interval_ms: int,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> None:
        """Initialize the policy.

        Args:
            read_per_minute: Read operations allowed per window.
            write_per_minute: Write operations allowed per window.
            min_write_interval_ms: Minimum milliseconds between accepted writes
                (0 disables the gate).
            window_ms: Window length shared by both limiters.
        """
        if min_write_interval_ms < 0:
            raise ValueError("min_write_interval_ms must not be negative")
        self._read = SlidingWindowRateLimiter(read_per_minute, window_ms)
        self._write = SlidingWindowRateLimiter(write_per_minute, window_ms)
        self._min_write_interval_ms = min_write_interval_ms
        self._last_write_at: float | None = None
        self._write_lock = threading.Lock()

    @property
    def last_write_at(self) -> float | None:
        return self._last_write_at

    def check_read(self, now: float | None = None) -> RateLimitResult:
        """Consume a read slot."""
        return self._read.consume(now)

    def check_write(self, now: float | None = None) -> RateLimitResult:
        """Consume a write slot, honoring the minimum write interval.

        Args:
            now: Timestamp in milliseconds (defaults to wall clock).

        Returns:
            RateLimitResult. last_write_at only advances on acceptance.
        """
        if now is None:
            now = now_ms()

        with self._write_lock:
            if self._last_write_at is not None and self._min_write_interval_ms > 0:
                elapsed = now - self._last_write_at
                if elapsed < self._min_write_interval_ms:
                    retry_after_ms = math.ceil(max(self._min_write_interval_ms - elapsed, 1))
                    logger.debug("Write spacing gate rejected call, retry in %dms", retry_after_ms)
                    return RateLimitResult(ok=False, retry_after_ms=retry_after_ms)

            result = self._write.consume(now)
            if not result.ok:
                return result

            self._last_write_at = now
            return _ACCEPTED

    def snapshot(self, now: float | None = None) -> dict[str, Any]:
        """Report window occupancy without consuming slots."""
        if now is None:
            now = now_ms()
        return {
            "read_in_window": self._read.count(now),
            "write_in_window": self._write.count(now),
            "last_write_at": self._last_write_at,
            "min_write_interval_ms": self._min_write_interval_ms,
        }
