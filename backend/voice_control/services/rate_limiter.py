"""Simple in-memory rate limiting utilities."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from starlette.requests import Request

from voice_control.config import settings
from voice_control.core.exceptions import RateLimitExceededError


@dataclass
class _Bucket:
    timestamps: Deque[float]
    window_seconds: int


class InMemoryRateLimiter:
    """
    Sliding-window rate limiter suitable for single-node deployments.

    Keys include caller-chosen text (login usernames), so a bucket is dropped
    as soon as its window holds no hits, and every bucket is rechecked at
    most once per evict_interval_seconds.
    """

    def __init__(
        self,
        evict_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._clock = clock
        self._evict_interval = evict_interval_seconds
        self._last_evict = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _prune(self, key: str, window_seconds: int, now: float) -> Optional[_Bucket]:
        bucket = self._buckets.get(key)
        if bucket is None:
            return None
        cutoff = now - window_seconds
        while bucket.timestamps and bucket.timestamps[0] <= cutoff:
            bucket.timestamps.popleft()
        if not bucket.timestamps:
            del self._buckets[key]
            return None
        return bucket

    def _evict_stale(self, now: float) -> None:
        if now - self._last_evict < self._evict_interval:
            return
        self._last_evict = now
        for key in list(self._buckets):
            self._prune(key, self._buckets[key].window_seconds, now)

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = self._clock()
        with self._lock:
            self._evict_stale(now)
            bucket = self._prune(key, window_seconds, now)
            if bucket is None:
                bucket = self._buckets[key] = _Bucket(timestamps=deque(), window_seconds=window_seconds)
            if len(bucket.timestamps) >= limit:
                return False
            bucket.timestamps.append(now)
            return True

    def retry_after(self, key: str, window_seconds: int) -> int:
        """Seconds until the oldest hit in the window expires"""
        now = self._clock()
        with self._lock:
            bucket = self._prune(key, window_seconds, now)
            if bucket is None:
                return 0
            return max(0, int(bucket.timestamps[0] + window_seconds - now) + 1)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def enforce(
    limiter: InMemoryRateLimiter,
    key: str,
    limit: int,
    window_seconds: int,
    message: Optional[str] = None,
) -> None:
    """Raise RateLimitExceededError when key is over its budget"""
    if not limiter.allow(key, limit, window_seconds):
        raise RateLimitExceededError(
            message or "Rate limit exceeded. Please try again later.",
            retry_after=limiter.retry_after(key, window_seconds),
        )


def enforce_login_limits(limiter: InMemoryRateLimiter, request: Request, username: str) -> None:
    ip = client_ip(request)
    user_key = username.strip().lower()
    enforce(limiter, f"login:min:{ip}:{user_key}", settings.LOGIN_RATE_LIMIT_PER_MINUTE, 60,
            "Too many login attempts. Please wait a minute.")
    enforce(limiter, f"login:hour:{ip}:{user_key}", settings.LOGIN_RATE_LIMIT_PER_HOUR, 3600,
            "Too many login attempts. Please try again later.")


def enforce_refresh_limits(limiter: InMemoryRateLimiter, request: Request) -> None:
    ip = client_ip(request)
    enforce(limiter, f"refresh:min:{ip}", settings.RATE_LIMIT_PER_MINUTE, 60,
            "Too many refresh attempts. Slow down.")
    enforce(limiter, f"refresh:hour:{ip}", settings.RATE_LIMIT_PER_HOUR, 3600,
            "Too many refresh attempts. Try later.")
