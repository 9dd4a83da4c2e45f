"""Unit tests for data models."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from trades_tracker.models import (
    Balance,
    FuturesTrade,
    Position,
    PositionSide,
    Trade,
    TradeSource,
    millis_to_datetime,
)


class TestBalance:
    def test_total(self, sample_balance: Balance) -> None:
        assert sample_balance.total == 150.0

    def test_timestamp_defaults_to_utc_now(self, sample_balance: Balance) -> None:
        assert sample_balance.timestamp.tzinfo is not None
        assert (datetime.now(timezone.utc) - sample_balance.timestamp).total_seconds() < 60

    def test_frozen(self, sample_balance: Balance) -> None:
        with pytest.raises(AttributeError):
            sample_balance.available = 1.0  # type: ignore[misc]


class TestTrade:
    def test_trade_datetime(self, sample_trade: Trade) -> None:
        assert sample_trade.trade_datetime == datetime(
            2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
        )

    def test_defaults(self, sample_trade: Trade) -> None:
        assert sample_trade.trade_id == ""
        assert sample_trade.fee == 0.0
        assert sample_trade.fee_asset == ""


class TestFuturesTrade:
    def test_is_a_trade(self, sample_futures_trade: FuturesTrade) -> None:
        assert isinstance(sample_futures_trade, Trade)
        assert sample_futures_trade.position_side is PositionSide.LONG
        assert sample_futures_trade.source is TradeSource.CLOSED_PNL

    def test_optional_fields_default_to_none(self) -> None:
        trade = FuturesTrade(
            symbol="X",
            order_id="1",
            side="BUY",
            position_side=PositionSide.SHORT,
            order_type="MARKET",
            quantity=1.0,
            price=1.0,
            executed_quantity=1.0,
            cumulative_quote_quantity=1.0,
            status="FILLED",
            time_in_force="GTC",
            trade_time_ms=0,
            update_time_ms=0,
            exchange="BingX",
        )
        assert trade.source is TradeSource.ORDER
        assert trade.stop_price is None
        assert trade.leverage is None
        assert trade.reduce_only is None
        assert trade.client_order_id is None


class TestPosition:
    def test_last_update(self, sample_position: Position) -> None:
        assert sample_position.last_update == millis_to_datetime(1_700_000_000_000)

    def test_defaults(self, sample_position: Position) -> None:
        assert sample_position.isolated is False
        assert sample_position.cumulative_realized_pnl == 0.0

    def test_side_values(self) -> None:
        assert PositionSide.LONG.value == "Long"
        assert PositionSide.SHORT.value == "Short"
