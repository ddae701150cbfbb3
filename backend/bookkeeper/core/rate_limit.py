"""Fixed-window rate limiting for destructive operations.

The limiter keeps its counters in process memory, so limits are enforced per
worker process. It is shared through ``app.state.rate_limiter``.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from bookkeeper.config import Settings


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_seconds: float
    key_prefix: str


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int | None = None


class RateLimiter(Protocol):
    async def check(self, config: RateLimitConfig, actor_id: str) -> RateLimitDecision: ...


def delete_limit(settings: Settings) -> RateLimitConfig:
    return RateLimitConfig(
        max_requests=settings.delete_rate_limit_max_requests,
        window_seconds=settings.delete_rate_limit_window_seconds,
        key_prefix="delete",
    )


@dataclass
class _Window:
    count: int
    reset_at: float


class InMemoryRateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = asyncio.Lock()

    async def check(self, config: RateLimitConfig, actor_id: str) -> RateLimitDecision:
        key = f"{config.key_prefix}:{actor_id}"
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)

            window = self._windows.get(key)
            if window is None:
                self._windows[key] = _Window(count=1, reset_at=now + config.window_seconds)
                return RateLimitDecision(allowed=True)

            if window.count >= config.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    retry_after_seconds=max(1, math.ceil(window.reset_at - now)),
                )

            window.count += 1
            return RateLimitDecision(allowed=True)

    def reset(self, config: RateLimitConfig, actor_id: str) -> None:
        self._windows.pop(f"{config.key_prefix}:{actor_id}", None)

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]
