import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

import structlog

from reference_discovery.models.resilience import RateLimitConfig
from reference_discovery.utils.exceptions import RateLimitedError

logger = structlog.get_logger()

MINUTE = 60.0
HOUR = 3600.0


class RateLimiter:
    """Sliding-window rate limiter for provider governance

    Tracks request timestamps over the last minute and the last hour.
    `acquire` never waits: when either window is full it raises
    RateLimitedError with the seconds until the oldest request expires,
    so the caller can back off without touching the network.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self.name = name
        self._clock = clock
        self._requests: Deque[float] = deque()
        self._lock = threading.RLock()

    def _prune(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= HOUR:
            self._requests.popleft()

    def _count_since(self, cutoff: float) -> int:
        return sum(1 for t in self._requests if t > cutoff)

    def acquire(self) -> None:
        """Record one request, raising if a window is already full."""
        with self._lock:
            now = self._clock()
            self._prune(now)

            minute_count = self._count_since(now - MINUTE)
            if minute_count >= self.config.requests_per_minute:
                oldest = next(t for t in self._requests if t > now - MINUTE)
                retry_after = max(0.0, MINUTE - (now - oldest))
                logger.warning(
                    "rate_limit_exceeded",
                    provider=self.name,
                    window="minute",
                    count=minute_count,
                    retry_after=retry_after,
                )
                raise RateLimitedError(
                    f"Rate limit exceeded for '{self.name}': "
                    f"{minute_count} requests in the last minute",
                    provider=self.name,
                    retry_after=retry_after,
                )

            if len(self._requests) >= self.config.requests_per_hour:
                retry_after = max(0.0, HOUR - (now - self._requests[0]))
                logger.warning(
                    "rate_limit_exceeded",
                    provider=self.name,
                    window="hour",
                    count=len(self._requests),
                    retry_after=retry_after,
                )
                raise RateLimitedError(
                    f"Rate limit exceeded for '{self.name}': "
                    f"{len(self._requests)} requests in the last hour",
                    provider=self.name,
                    retry_after=retry_after,
                )

            self._requests.append(now)

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()

    def get_status(self) -> Dict:
        """Current window usage, mirrored in provider stats."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            minute_count = self._count_since(now - MINUTE)
            hour_count = len(self._requests)
            return {
                "name": self.name,
                "requests_last_minute": minute_count,
                "requests_last_hour": hour_count,
                "remaining_minute": max(
                    0, self.config.requests_per_minute - minute_count
                ),
                "remaining_hour": max(0, self.config.requests_per_hour - hour_count),
                "is_limited": minute_count >= self.config.requests_per_minute
                or hour_count >= self.config.requests_per_hour,
            }
