"""Time-chunked history fetching."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ..signing import now_unix_millis

logger = logging.getLogger(__name__)

MS_PER_DAY = 24 * 60 * 60 * 1000

T = TypeVar("T")


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive ``[start_ms, end_ms]`` range."""

    start_ms: int
    end_ms: int


def plan_windows(now_ms: int, lookback_ms: int, chunk_ms: int) -> list[TimeWindow]:
    """Split ``[now - lookback, now]`` into windows of at most ``chunk_ms``.

    Windows are returned newest first. Each older window ends 1 ms before the
    next newer one starts, so the ranges neither overlap nor leave gaps.

    Examples:
        plan_windows(30d, 30d, 6d) → 5 windows, the last starting at 0
    """
    if chunk_ms <= 0:
        raise ValueError("chunk_ms must be positive")
    oldest = now_ms - lookback_ms
    windows: list[TimeWindow] = []
    end = now_ms
    while end >= oldest:
        start = max(end - chunk_ms, oldest)
        windows.append(TimeWindow(start, end))
        end = start - 1
    return windows


class ChunkedHistoryFetcher:
    """Run a per-window fetch over the lookback period, one window at a time."""

    def __init__(
        self,
        lookback_days: int = 30,
        chunk_days: int = 6,
        pause_seconds: float = 1.0,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log: logging.Logger | None = None,
    ) -> None:
        self.lookback_ms = lookback_days * MS_PER_DAY
        self.chunk_ms = chunk_days * MS_PER_DAY
        self.pause_seconds = pause_seconds
        self._sleep = sleep
        self._log = log or logger

    async def fetch(
        self,
        fetch_window: Callable[[int, int], Awaitable[list[T]]],
        label: str,
        now_ms: int | None = None,
    ) -> list[T]:
        """Concatenate ``fetch_window(start, end)`` results, newest window first.

        A window that raises is logged and skipped; the rest still run.
        """
        if now_ms is None:
            now_ms = now_unix_millis()
        windows = plan_windows(now_ms, self.lookback_ms, self.chunk_ms)

        results: list[T] = []
        for index, window in enumerate(windows, start=1):
            if index > 1 and self.pause_seconds > 0:
                await self._sleep(self.pause_seconds)
            try:
                chunk = await fetch_window(window.start_ms, window.end_ms)
            except Exception as e:
                self._log.error(
                    "%s chunk %d/%d failed: %s", label, index, len(windows), e
                )
                continue
            self._log.debug(
                "%s chunk %d/%d: %d records", label, index, len(windows), len(chunk)
            )
            results.extend(chunk)

        self._log.info("Fetched %d %s records over %d chunks", len(results), label, len(windows))
        return results
