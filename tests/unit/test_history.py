"""Unit tests for time-chunked history fetching."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from trades_tracker.services.history import (
    MS_PER_DAY,
    ChunkedHistoryFetcher,
    TimeWindow,
    plan_windows,
)

NOW = 1_700_000_000_000


class TestPlanWindows:
    def test_thirty_days_in_six_day_chunks(self) -> None:
        windows = plan_windows(NOW, 30 * MS_PER_DAY, 6 * MS_PER_DAY)
        assert len(windows) == 5
        assert windows[0].end_ms == NOW
        assert windows[-1].start_ms == NOW - 30 * MS_PER_DAY

    def test_no_gaps_or_overlaps(self) -> None:
        windows = plan_windows(NOW, 30 * MS_PER_DAY, 6 * MS_PER_DAY)
        for newer, older in zip(windows, windows[1:]):
            assert older.end_ms == newer.start_ms - 1
        assert all(w.start_ms <= w.end_ms for w in windows)
        assert all(w.end_ms - w.start_ms <= 6 * MS_PER_DAY for w in windows)

    def test_newest_first(self) -> None:
        windows = plan_windows(NOW, 30 * MS_PER_DAY, 6 * MS_PER_DAY)
        starts = [w.start_ms for w in windows]
        assert starts == sorted(starts, reverse=True)

    def test_lookback_shorter_than_chunk(self) -> None:
        assert plan_windows(NOW, MS_PER_DAY, 6 * MS_PER_DAY) == [
            TimeWindow(NOW - MS_PER_DAY, NOW)
        ]

    def test_invalid_chunk(self) -> None:
        with pytest.raises(ValueError):
            plan_windows(NOW, MS_PER_DAY, 0)


class TestChunkedHistoryFetcher:
    @pytest.mark.asyncio
    async def test_calls_each_window_and_pauses(self) -> None:
        sleep = AsyncMock()
        fetcher = ChunkedHistoryFetcher(30, 6, 1.0, sleep=sleep)
        calls: list[tuple[int, int]] = []

        async def fetch_window(start: int, end: int) -> list[int]:
            calls.append((start, end))
            return [len(calls)]

        result = await fetcher.fetch(fetch_window, "test", now_ms=NOW)
        assert len(calls) == 5
        assert calls[0][1] == NOW
        assert result == [1, 2, 3, 4, 5]
        assert sleep.await_count == 4
        sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_failing_chunk_is_skipped(self) -> None:
        fetcher = ChunkedHistoryFetcher(30, 6, 0, sleep=AsyncMock())
        fetch_window = AsyncMock(
            side_effect=[["a"], RuntimeError("boom"), ["c"], ["d"], ["e"]]
        )
        result = await fetcher.fetch(fetch_window, "test", now_ms=NOW)
        assert result == ["a", "c", "d", "e"]
        assert fetch_window.await_count == 5

    @pytest.mark.asyncio
    async def test_zero_pause_never_sleeps(self) -> None:
        sleep = AsyncMock()
        fetcher = ChunkedHistoryFetcher(12, 6, 0, sleep=sleep)
        await fetcher.fetch(AsyncMock(return_value=[]), "test", now_ms=NOW)
        sleep.assert_not_called()
