"""Fixed-window request rate limiting backed by the `limits` library."""

import math
import time
from dataclasses import dataclass
from datetime import UTC, datetime

from limits import RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter


@dataclass(frozen=True)
class RateLimitPolicy:
    """max_requests per window_seconds, counted per key under `name`."""

    name: str
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after_seconds: int


class RateLimiter:
    """
    Counts requests per key inside fixed windows.

    The storage decides the sharing scope: memory:// is process-local,
    redis://... is shared between instances.
    """

    def __init__(self, policy: RateLimitPolicy, storage: Storage | None = None) -> None:
        self.policy = policy
        self._storage = storage if storage is not None else storage_from_string("memory://")
        self._limiter = FixedWindowRateLimiter(self._storage)
        self._item = RateLimitItemPerSecond(policy.max_requests, policy.window_seconds)

    def check(self, *key: str) -> RateLimitResult:
        """Record one request for key and report whether it is within the limit."""
        allowed = self._limiter.hit(self._item, self.policy.name, *key)
        stats = self._limiter.get_window_stats(self._item, self.policy.name, *key)
        retry_after = 0
        if not allowed:
            retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        return RateLimitResult(
            allowed=allowed,
            limit=self.policy.max_requests,
            remaining=max(0, stats.remaining),
            reset_at=datetime.fromtimestamp(stats.reset_time, UTC),
            retry_after_seconds=retry_after,
        )

    def reset(self, *key: str) -> None:
        """Forget the counter for key (e.g. after a successful login)."""
        self._limiter.clear(self._item, self.policy.name, *key)


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": result.reset_at.isoformat(),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def create_rate_limiter(policy: RateLimitPolicy, storage_uri: str) -> RateLimiter:
    return RateLimiter(policy, storage_from_string(storage_uri))
