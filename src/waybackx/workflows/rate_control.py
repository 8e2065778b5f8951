"""Adaptive token-bucket limiter tuned from archive response headers."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .wayback_config import (
    HDR_RATELIMIT_REMAINING,
    HDR_RETRY_AFTER,
    INITIAL_INTERVAL,
    LOW_QUOTA_INTERVAL,
    LOW_QUOTA_REMAINING,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Return Retry-After as seconds, or None when it is not a plain number."""

    raw = (value or "").strip()
    if not raw:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds


async def sleep_unless_cancelled(delay: float, sleep: Sleep, cancel_event: Optional[asyncio.Event]) -> bool:
    """Sleep for ``delay``; returns False when cancelled before it elapsed."""

    if cancel_event is None:
        await sleep(delay)
        return True
    if cancel_event.is_set():
        return False
    sleeper = asyncio.ensure_future(sleep(delay))
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
    return not cancel_event.is_set()


class AdaptiveRateLimiter:
    """Token bucket whose interval can only be tightened at runtime.

    One ``asyncio.Lock`` guards the interval and the bucket together, so a
    header-driven adjustment never interleaves with a caller reading the rate
    to reserve its token.
    """

    def __init__(
        self,
        interval: float = INITIAL_INTERVAL,
        burst: int = 1,
        *,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self._interval = float(interval)
        self._burst = burst
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(burst)
        self._last = self._clock()
        self._lock = asyncio.Lock()
        self._adjustments = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def burst(self) -> int:
        return self._burst

    def _advance(self, now: float) -> None:
        # caller holds the lock
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self._burst), self._tokens + elapsed / self._interval)
        self._last = now

    async def acquire(self, cancel_event: Optional[asyncio.Event] = None) -> float:
        """Wait for a token under the current rate; returns the reserved delay.

        The wait ends early when ``cancel_event`` fires; callers check the
        event before using the token.
        """

        async with self._lock:
            self._advance(self._clock())
            self._tokens -= 1.0
            delay = 0.0 if self._tokens >= 0 else -self._tokens * self._interval
        if delay > 0:
            await sleep_unless_cancelled(delay, self._sleep, cancel_event)
        return delay

    async def adjust_from_headers(self, headers: Optional[Mapping[str, str]]) -> bool:
        """Tighten the rate from ``Retry-After`` / ``X-RateLimit-Remaining``.

        Returns True when the interval changed.
        """

        if not headers:
            return False
        async with self._lock:
            retry_after = parse_retry_after(headers.get(HDR_RETRY_AFTER))
            if retry_after is not None:
                if retry_after > self._interval:
                    self._set_interval(retry_after)
                    logger.debug("Rate limit adjusted to 1 request every %ss", _fmt(retry_after))
                    return True
                return False
            remaining = (headers.get(HDR_RATELIMIT_REMAINING) or "").strip()
            if remaining in LOW_QUOTA_REMAINING and LOW_QUOTA_INTERVAL > self._interval:
                self._set_interval(LOW_QUOTA_INTERVAL)
                if remaining == "0":
                    logger.debug(
                        "Rate limit exceeded, slowing down to 1 request every %ss", _fmt(LOW_QUOTA_INTERVAL)
                    )
                else:
                    logger.debug(
                        "Rate limit nearly exceeded, slowing down to 1 request every %ss",
                        _fmt(LOW_QUOTA_INTERVAL),
                    )
                return True
        return False

    def _set_interval(self, interval: float) -> None:
        # settle tokens accrued at the old rate before switching
        self._advance(self._clock())
        self._interval = interval
        self._adjustments += 1

    def snapshot(self) -> Dict[str, Any]:
        return {
            "interval_seconds": self._interval,
            "burst": self._burst,
            "adjustments": self._adjustments,
        }


def _fmt(seconds: float) -> str:
    return f"{seconds:g}"


__all__ = ["AdaptiveRateLimiter", "parse_retry_after", "sleep_unless_cancelled"]
