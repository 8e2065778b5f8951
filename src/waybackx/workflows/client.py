"""aiohttp transport for the CDX API, sharing one adaptive limiter."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from .rate_control import AdaptiveRateLimiter
from .retry import FetchOutcome, fetch_with_retries
from .wayback_config import (
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    HDR_USER_AGENT,
    KEEPALIVE_TIMEOUT,
    POOL_LIMIT,
    POOL_LIMIT_PER_HOST,
)

logger = logging.getLogger(__name__)


class WaybackClient:
    """Async CDX client owning an ``aiohttp`` session and the process-wide limiter.

    Use as ``async with WaybackClient(...) as client``. ``get`` satisfies the
    retry loop's transport protocol; ``fetch_cdx`` runs that loop.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        limiter: Optional[AdaptiveRateLimiter] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.limiter = limiter or AdaptiveRateLimiter()
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "WaybackClient":
        if self._session is None:
            connector = aiohttp.TCPConnector(
                limit=POOL_LIMIT,
                limit_per_host=POOL_LIMIT_PER_HOST,
                keepalive_timeout=KEEPALIVE_TIMEOUT,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={HDR_USER_AGENT: self.user_agent},
            )
            logger.debug("Opened CDX session (timeout=%ss, user agent=%s)", f"{self.timeout:g}", self.user_agent)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def get(self, url: str) -> Any:
        if self._session is None:
            raise RuntimeError("WaybackClient session is not open; use 'async with'")
        return self._session.get(url, headers={HDR_USER_AGENT: self.user_agent})

    async def fetch_cdx(
        self,
        url: str,
        max_attempts: int,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        label: Optional[str] = None,
    ) -> FetchOutcome:
        return await fetch_with_retries(
            url,
            transport=self,
            limiter=self.limiter,
            max_attempts=max_attempts,
            cancel_event=cancel_event,
            label=label,
        )


__all__ = ["WaybackClient"]
