"""Sliding-window rate limiting for upload requests."""

import hashlib
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Tuple

from fastapi import Request

from common.logging_config import get_logger

logger = get_logger(__name__)


class RateLimitExceededError(Exception):
    """
    Raised when a client exceeds the upload rate limit.
    """

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class SlidingWindowRateLimiter:
    """
    In-process limiter allowing `limit` hits per key within `window_seconds`.

    A limit of zero or less disables limiting.
    """

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}
        self._next_sweep = clock() + window_seconds

    def hit(self, key: str) -> Tuple[bool, int]:
        """
        Record a request for key if it is within the limit.

        Args:
            key: Client key (hashed address)

        Returns:
            (allowed, retry_after_seconds); retry_after is 0 when allowed
        """
        if self.limit <= 0:
            return True, 0

        now = self._clock()
        cutoff = now - self.window_seconds

        with self._lock:
            if now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + self.window_seconds

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= self.limit:
                retry_after = max(1, int(hits[0] + self.window_seconds - now))
                return False, retry_after

            hits.append(now)
            return True, 0

    def _sweep(self, cutoff: float) -> None:
        # keys whose newest hit has left the window
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def client_key(request: Request) -> str:
    ip = request.client.host if request.client else "unknown"
    return f"ip:{hashlib.sha256(ip.encode()).hexdigest()}"


async def enforce_upload_rate_limit(request: Request) -> None:
    """
    FastAPI dependency rejecting uploads over the configured rate.

    Raises:
        RateLimitExceededError: If the client is over its limit
    """
    limiter: SlidingWindowRateLimiter = request.app.state.upload_limiter
    allowed, retry_after = limiter.hit(client_key(request))
    if not allowed:
        logger.warning(f"Upload rate limit exceeded [retry_after={retry_after}s]")
        raise RateLimitExceededError(
            "Too many upload requests, please try again later.",
            retry_after=retry_after,
        )
