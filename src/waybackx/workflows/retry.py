"""Bounded retry loop for CDX queries with a quadratic backoff schedule."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncContextManager, Awaitable, Callable, Mapping, Optional, Protocol, Tuple, Union

import aiohttp

from ..core.errors import ConfigError
from .rate_control import AdaptiveRateLimiter, sleep_unless_cancelled
from .wayback_config import HDR_CONTENT_LENGTH, RETRYABLE_STATUS_CODES

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

# Failures that mean "the request never produced a usable response".
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


class ResponseLike(Protocol):
    status: int
    headers: Mapping[str, str]

    async def read(self) -> bytes: ...


class Transport(Protocol):
    def get(self, url: str) -> AsyncContextManager[ResponseLike]: ...


@dataclass(frozen=True)
class Success:
    body: bytes


@dataclass(frozen=True)
class RetryableFailure:
    reason: str


@dataclass(frozen=True)
class FatalFailure:
    reason: str


@dataclass(frozen=True)
class Cancelled:
    reason: str = "cancelled"


AttemptOutcome = Union[Success, RetryableFailure, FatalFailure, Cancelled]


@dataclass
class FetchOutcome:
    """Result of a whole retry loop for one query."""

    body: Optional[bytes]
    error: Optional[str] = None
    attempts: int = 0
    status: Optional[int] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.body is not None


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt ``attempt`` (1, 4, 9, 16, ...)."""

    return float(attempt * attempt)


def is_success_status(status: int) -> bool:
    return 200 <= status < 300


def classify_status(status: int, attempt: int, max_attempts: int) -> Optional[AttemptOutcome]:
    """Return None for 2xx, otherwise the retry decision for a bad status."""

    if is_success_status(status):
        return None
    reason = f"status_{status}"
    retryable = status >= 500 or status in RETRYABLE_STATUS_CODES
    if retryable and attempt < max_attempts:
        return RetryableFailure(reason)
    return FatalFailure(reason)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def validate_max_attempts(max_attempts: int) -> int:
    try:
        value = int(max_attempts)
    except (TypeError, ValueError):
        raise ConfigError(f"retries must be an integer, got {max_attempts!r}") from None
    if value < 1:
        raise ConfigError("retries must be at least 1")
    return value


async def _attempt_once(
    url: str,
    transport: Transport,
    limiter: AdaptiveRateLimiter,
    attempt: int,
    max_attempts: int,
    cancel_event: Optional[asyncio.Event] = None,
) -> Tuple[AttemptOutcome, Optional[int]]:
    await limiter.acquire(cancel_event)
    if cancel_event is not None and cancel_event.is_set():
        return Cancelled(), None
    status: Optional[int] = None
    try:
        async with transport.get(url) as resp:
            status = resp.status
            await limiter.adjust_from_headers(resp.headers)
            logger.debug(
                "Response status: %s, Content-Length: %s",
                status,
                resp.headers.get(HDR_CONTENT_LENGTH, ""),
            )
            verdict = classify_status(status, attempt, max_attempts)
            if verdict is not None:
                return verdict, status
            try:
                body = await resp.read()
            except TRANSPORT_ERRORS as exc:
                reason = f"body_read_failed: {_describe(exc)}"
                if attempt < max_attempts:
                    return RetryableFailure(reason), status
                return FatalFailure(reason), status
            return Success(body), status
    except TRANSPORT_ERRORS as exc:
        reason = f"request_failed: {_describe(exc)}"
        if attempt < max_attempts:
            return RetryableFailure(reason), status
        return FatalFailure(reason), status


async def fetch_with_retries(
    url: str,
    *,
    transport: Transport,
    limiter: AdaptiveRateLimiter,
    max_attempts: int,
    sleep: Optional[Sleep] = None,
    cancel_event: Optional[asyncio.Event] = None,
    label: Optional[str] = None,
) -> FetchOutcome:
    """Fetch ``url`` with up to ``max_attempts`` attempts.

    Each attempt acquires a limiter token, issues the request, feeds the
    response headers back into the limiter and then decides whether to retry.
    Failures are reported in the returned ``FetchOutcome``; only an invalid
    ``max_attempts`` raises.
    """

    max_attempts = validate_max_attempts(max_attempts)
    sleep = sleep or asyncio.sleep
    name = label or url
    outcome = FetchOutcome(body=None)

    for attempt in range(1, max_attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            outcome.cancelled = True
            outcome.error = outcome.error or "cancelled"
            return outcome
        logger.debug("Sending request to Wayback Machine CDX API (attempt %d/%d)", attempt, max_attempts)
        result, status = await _attempt_once(url, transport, limiter, attempt, max_attempts, cancel_event)
        if isinstance(result, Cancelled):
            outcome.cancelled = True
            outcome.error = outcome.error or result.reason
            return outcome
        outcome.attempts = attempt
        outcome.status = status

        if isinstance(result, Success):
            outcome.body = result.body
            outcome.error = None
            return outcome

        outcome.error = result.reason
        if isinstance(result, FatalFailure):
            logger.warning("Giving up on %s after %d attempt(s): %s", name, attempt, result.reason)
            return outcome

        delay = backoff_delay(attempt)
        logger.warning("Attempt %d/%d failed for %s: %s", attempt, max_attempts, name, result.reason)
        logger.debug("Waiting %ss before retry...", f"{delay:g}")
        if not await sleep_unless_cancelled(delay, sleep, cancel_event):
            outcome.cancelled = True
            return outcome

    # unreachable: the final attempt never classifies as retryable
    return outcome


__all__ = [
    "AttemptOutcome",
    "Cancelled",
    "FatalFailure",
    "FetchOutcome",
    "RetryableFailure",
    "Success",
    "Transport",
    "TRANSPORT_ERRORS",
    "backoff_delay",
    "classify_status",
    "fetch_with_retries",
    "is_success_status",
    "validate_max_attempts",
]
