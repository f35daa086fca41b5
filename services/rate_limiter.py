"""
Rate Limiter - sliding-window admission control.

Each key (e.g. "evaluate:<client ip>") keeps the timestamps of its admitted
requests. A request is admitted iff fewer than max_requests timestamps are
younger than window_ms. Buckets whose timestamps have all expired are removed
by a lazy sweep that runs at most once per cleanup interval, so no background
thread is needed.

The bucket storage sits behind RateLimitStore. InMemoryRateLimitStore is
enough for a single process; multi-instance deployments can plug in a shared
store with the same interface.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL_MS = 5 * 60 * 1000  # 5 minutes


def now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check; reset_at is epoch milliseconds"""
    allowed: bool
    remaining: int
    reset_at: float

    def retry_after_seconds(self, now: float) -> int:
        """Whole seconds until the oldest in-window request expires (at least 1)"""
        seconds = -(-(self.reset_at - now) // 1000)  # ceil for floats
        return max(1, int(seconds))


class RateLimitStore(ABC):
    """Storage for rate limit buckets; each method must be atomic per call"""

    @abstractmethod
    def check_and_record(self, key: str, now: float, window_ms: int, max_requests: int) -> RateLimitResult:
        """Drop expired timestamps for key, then admit and record, or reject"""

    @abstractmethod
    def sweep(self, now: float, window_ms: int) -> int:
        """Remove buckets with no timestamps inside the window; return how many"""


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store guarded by a single lock"""

    def __init__(self):
        self._buckets: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def check_and_record(self, key: str, now: float, window_ms: int, max_requests: int) -> RateLimitResult:
        with self._lock:
            timestamps = [t for t in self._buckets.get(key, []) if now - t < window_ms]

            if len(timestamps) >= max_requests:
                self._buckets[key] = timestamps
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=timestamps[0] + window_ms,
                )

            timestamps.append(now)
            self._buckets[key] = timestamps
            return RateLimitResult(
                allowed=True,
                remaining=max_requests - len(timestamps),
                reset_at=now + window_ms,
            )

    def sweep(self, now: float, window_ms: int) -> int:
        removed = 0
        with self._lock:
            for key in list(self._buckets):
                live = [t for t in self._buckets[key] if now - t < window_ms]
                if live:
                    self._buckets[key] = live
                else:
                    del self._buckets[key]
                    removed += 1
        return removed

    def __len__(self):
        with self._lock:
            return len(self._buckets)


class RateLimiter:
    """
    Sliding-window rate limiter.

    Create one per process (create_app stores it in app.extensions) and pass
    it to the code that needs it.

    Examples:
        >>> limiter = RateLimiter()
        >>> limiter.check("evaluate:10.0.0.1", window_ms=60000, max_requests=15).allowed
        True
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        cleanup_interval_ms: int = DEFAULT_CLEANUP_INTERVAL_MS,
        clock: Callable[[], float] = now_ms
    ):
        self.store = store or InMemoryRateLimitStore()
        self.cleanup_interval_ms = cleanup_interval_ms
        self.clock = clock
        self._last_cleanup = clock()
        self._cleanup_lock = threading.Lock()

    def _maybe_cleanup(self, now: float, window_ms: int):
        # Only one caller per interval performs the sweep
        with self._cleanup_lock:
            if now - self._last_cleanup < self.cleanup_interval_ms:
                return
            self._last_cleanup = now

        removed = self.store.sweep(now, window_ms)
        if removed:
            logger.debug(f"Rate limiter sweep removed {removed} expired bucket(s)")

    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        """
        Admit or reject one request for key.

        Args:
            key: Bucket identifier, e.g. "evaluate:203.0.113.7"
            window_ms: Length of the sliding window in milliseconds
            max_requests: Requests allowed per window

        Returns:
            RateLimitResult(allowed, remaining, reset_at)

        Raises:
            ValueError: If window_ms or max_requests is not positive
        """
        if window_ms <= 0 or max_requests <= 0:
            raise ValueError(f"window_ms and max_requests must be positive, got {window_ms}, {max_requests}")

        now = self.clock()
        self._maybe_cleanup(now, window_ms)
        return self.store.check_and_record(key, now, window_ms, max_requests)


def get_client_ip(headers, remote_addr: Optional[str] = None) -> str:
    """First X-Forwarded-For entry, else the socket address, else localhost"""
    forwarded = headers.get('X-Forwarded-For')
    if forwarded:
        first = forwarded.split(',')[0].strip()
        if first:
            return first
    return remote_addr or '127.0.0.1'
