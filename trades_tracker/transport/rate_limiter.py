"""Per-client request pacing."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Space requests at least ``1 / requests_per_second`` apart.

    Strict pacing, not a token bucket: callers are serialized and no bursts
    are allowed. The lock covers the check, the sleep and the update, so
    concurrent callers never observe a stale ``last_request_time``.
    """

    def __init__(
        self,
        requests_per_second: float,
        *,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log: logging.Logger | None = None,
    ) -> None:
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.min_interval = 1.0 / requests_per_second
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._log = log or logger
        self._lock = asyncio.Lock()
        self._last_request_time: float | None = None

    async def acquire(self) -> None:
        async with self._lock:
            if self._last_request_time is not None:
                elapsed = self._clock() - self._last_request_time
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    self._log.debug(
                        "Rate limiting %s request, waiting %dms",
                        self.name or "API",
                        int(delay * 1000),
                    )
                    await self._sleep(delay)
            self._last_request_time = self._clock()
