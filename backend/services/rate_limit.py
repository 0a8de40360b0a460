"""In-memory sliding-window rate limiter keyed by client id.

Each client keeps the timestamps of its accepted requests inside the current
window. Rejected requests are not recorded, so a client that backs off
recovers as soon as its oldest request leaves the window. Clients whose
windows have emptied are pruned every PRUNE_INTERVAL seconds.

Like the cache, each uvicorn worker has its own limiter.
"""

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass

from services.clock import Clock, system_clock

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 100
DEFAULT_WINDOW_SECONDS = 60
PRUNE_INTERVAL = 5 * 60


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class SlidingWindowRateLimiter:
    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Clock = system_clock,
    ):
        if max_requests < 1 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, deque[float]] = {}
        self._last_prune = clock()

    def hit(self, client_id: str) -> RateLimitResult:
        """Record a request from ``client_id`` if it fits in the window."""
        with self._lock:
            now = self._clock()
            if now - self._last_prune >= PRUNE_INTERVAL:
                self._prune_locked(now)

            timestamps = self._requests.setdefault(client_id, deque())
            self._drop_expired(timestamps, now)

            if len(timestamps) >= self._max_requests:
                reset_at = timestamps[0] + self._window
                logger.warning("Rate limit exceeded for client %s", client_id)
                return RateLimitResult(
                    allowed=False,
                    limit=self._max_requests,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(1, math.ceil(reset_at - now)),
                )

            timestamps.append(now)
            return RateLimitResult(
                allowed=True,
                limit=self._max_requests,
                remaining=self._max_requests - len(timestamps),
                reset_at=timestamps[0] + self._window,
            )

    def prune(self) -> int:
        """Drop clients with no requests left in the window. Returns the number dropped."""
        with self._lock:
            return self._prune_locked(self._clock())

    def _drop_expired(self, timestamps: deque[float], now: float) -> None:
        cutoff = now - self._window
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def _prune_locked(self, now: float) -> int:
        self._last_prune = now
        empty = []
        for client_id, timestamps in self._requests.items():
            self._drop_expired(timestamps, now)
            if not timestamps:
                empty.append(client_id)
        for client_id in empty:
            del self._requests[client_id]
        return len(empty)

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)
