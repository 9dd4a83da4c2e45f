"""Normalized record model: all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# Positions smaller than this are treated as closed.
POSITION_EPSILON = 1e-6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def millis_to_datetime(value_ms: int) -> datetime:
    """Convert Unix epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value_ms / 1000, tz=timezone.utc)


class PositionSide(Enum):
    LONG = "Long"
    SHORT = "Short"


class TradeSource(Enum):
    """Wire record kind a futures trade was mapped from."""

    ORDER = "order"
    EXECUTION = "execution"
    CLOSED_PNL = "closed_pnl"


@dataclass(frozen=True, kw_only=True)
class Balance:
    """Spot / funding wallet balance for one asset."""

    asset: str
    available: float
    locked: float
    exchange: str
    usd_value: float | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def total(self) -> float:
        return self.available + self.locked


@dataclass(frozen=True, kw_only=True)
class FuturesBalance:
    """Futures (perpetual) margin account balance."""

    asset: str
    balance: float
    available_balance: float
    cross_unrealized_pnl: float
    max_withdraw_amount: float
    exchange: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, kw_only=True)
class Trade:
    """Spot order / fill record."""

    symbol: str
    order_id: str
    side: str
    order_type: str
    quantity: float
    price: float
    executed_quantity: float
    cumulative_quote_quantity: float
    status: str
    time_in_force: str
    trade_time_ms: int
    update_time_ms: int
    exchange: str
    trade_id: str = ""
    fee: float = 0.0
    fee_asset: str = ""

    @property
    def trade_datetime(self) -> datetime:
        return millis_to_datetime(self.trade_time_ms)


@dataclass(frozen=True, kw_only=True)
class FuturesTrade(Trade):
    """Futures order, execution or closed-PnL record."""

    position_side: PositionSide
    source: TradeSource = TradeSource.ORDER
    avg_price: float = 0.0
    realized_pnl: float = 0.0
    stop_price: float | None = None
    leverage: str | None = None
    reduce_only: bool | None = None
    working_type: str | None = None
    client_order_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class Position:
    """Open futures position."""

    symbol: str
    position_side: PositionSide
    position_size: float
    entry_price: float
    mark_price: float
    unrealized_pnl: float
    leverage: float
    isolated_margin: float
    update_time_ms: int
    exchange: str
    isolated: bool = False
    cumulative_realized_pnl: float = 0.0

    @property
    def last_update(self) -> datetime:
        return millis_to_datetime(self.update_time_ms)
