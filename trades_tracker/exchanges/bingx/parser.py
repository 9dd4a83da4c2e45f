"""BingX response parsing: pure functions, no I/O."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from ...errors import MalformedResponseError
from ...models import (
    POSITION_EPSILON,
    Balance,
    FuturesBalance,
    FuturesTrade,
    Position,
    Trade,
)
from ..decoding import (
    BINGX_POSITION_SIDE,
    get_field,
    get_str,
    optional_str,
    parse_decimal,
    parse_millis,
    parse_optional_bool,
    parse_optional_decimal,
)

logger = logging.getLogger(__name__)

EXCHANGE = "BingX"
FUTURES_FEE_ASSET = "USDT"


@dataclass(frozen=True)
class BingXResponse:
    """BingX envelope: ``{"code": 0, "msg": "", "data": ...}``."""

    code: int
    msg: str
    data: Any
    timestamp: int = 0

    @property
    def is_success(self) -> bool:
        return self.code == 0

    @classmethod
    def from_payload(cls, payload: Any) -> BingXResponse:
        if not isinstance(payload, Mapping):
            raise MalformedResponseError("BingX envelope is not an object", raw=str(payload))
        code = parse_optional_decimal(get_field(payload, "code"))
        return cls(
            code=-1 if code is None else int(code),
            msg=get_str(payload, "msg"),
            data=get_field(payload, "data"),
            timestamp=parse_millis(get_field(payload, "timestamp")),
        )


def _rows(value: Any) -> list[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, list):
        return [row for row in value if isinstance(row, Mapping)]
    return []


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


def parse_spot_balances(data: Any) -> list[Balance]:
    """``data.balances[]`` → non-zero spot balances."""
    balances: list[Balance] = []
    for row in _rows(get_field(data, "balances")):
        free = parse_decimal(get_field(row, "free"))
        locked = parse_decimal(get_field(row, "locked"))
        if free + locked <= 0:
            continue
        balances.append(
            Balance(
                asset=get_str(row, "asset"),
                available=free,
                locked=locked,
                exchange=EXCHANGE,
            )
        )
    return balances


def parse_futures_balances(data: Any) -> list[FuturesBalance]:
    """``data.balance`` is a single object on most accounts, a list on some."""
    balances: list[FuturesBalance] = []
    for row in _rows(get_field(data, "balance")):
        balances.append(
            FuturesBalance(
                asset=get_str(row, "asset", "USDT"),
                balance=parse_decimal(get_field(row, "balance")),
                available_balance=parse_decimal(get_field(row, "availableMargin")),
                cross_unrealized_pnl=parse_decimal(get_field(row, "unrealizedProfit")),
                max_withdraw_amount=parse_decimal(get_field(row, "equity")),
                exchange=EXCHANGE,
            )
        )
    return balances


# ---------------------------------------------------------------------------
# Trade history
# ---------------------------------------------------------------------------


def parse_spot_orders(data: Any) -> list[Trade]:
    trades: list[Trade] = []
    for row in _rows(get_field(data, "orders")):
        trades.append(
            Trade(
                symbol=get_str(row, "symbol"),
                order_id=get_str(row, "orderId"),
                side=get_str(row, "side"),
                order_type=get_str(row, "type"),
                quantity=parse_decimal(get_field(row, "origQty")),
                price=parse_decimal(get_field(row, "price")),
                executed_quantity=parse_decimal(get_field(row, "executedQty")),
                cumulative_quote_quantity=parse_decimal(
                    get_field(row, "cummulativeQuoteQty")
                ),
                status=get_str(row, "status"),
                time_in_force=get_str(row, "timeInForce"),
                trade_time_ms=parse_millis(get_field(row, "time")),
                update_time_ms=parse_millis(get_field(row, "updateTime")),
                fee=abs(parse_decimal(get_field(row, "commission"))),
                fee_asset=get_str(row, "commissionAsset"),
                exchange=EXCHANGE,
            )
        )
    return trades


def parse_futures_orders(
    data: Any, log: logging.Logger | None = None
) -> list[FuturesTrade]:
    """Map ``allOrders`` rows; rows with an unknown ``positionSide`` are skipped."""
    log = log or logger
    trades: list[FuturesTrade] = []
    for row in _rows(get_field(data, "orders")):
        side = BINGX_POSITION_SIDE.try_decode(get_field(row, "positionSide"))
        if not side.ok:
            log.warning("Skipping BingX futures order %s: %s", get_str(row, "orderId"), side.error)
            continue

        stop_price = parse_optional_decimal(get_field(row, "stopPrice"))
        leverage = get_field(row, "leverage")
        trades.append(
            FuturesTrade(
                symbol=get_str(row, "symbol"),
                order_id=get_str(row, "orderId"),
                side=get_str(row, "side"),
                position_side=side.value,
                order_type=get_str(row, "type"),
                quantity=parse_decimal(get_field(row, "origQty")),
                price=parse_decimal(get_field(row, "price")),
                avg_price=parse_decimal(get_field(row, "avgPrice")),
                executed_quantity=parse_decimal(get_field(row, "executedQty")),
                cumulative_quote_quantity=parse_decimal(get_field(row, "cumQuote")),
                stop_price=stop_price if stop_price else None,
                realized_pnl=parse_decimal(get_field(row, "profit")),
                fee=abs(parse_decimal(get_field(row, "commission"))),
                fee_asset=FUTURES_FEE_ASSET,
                status=get_str(row, "status"),
                time_in_force=get_str(row, "timeInForce"),
                trade_time_ms=parse_millis(get_field(row, "time")),
                update_time_ms=parse_millis(get_field(row, "updateTime")),
                leverage=optional_str(leverage),
                reduce_only=parse_optional_bool(get_field(row, "reduceOnly")),
                working_type=optional_str(get_field(row, "workingType")),
                client_order_id=optional_str(get_field(row, "clientOrderId")),
                exchange=EXCHANGE,
            )
        )
    return trades


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


def parse_positions(data: Any, log: logging.Logger | None = None) -> list[Position]:
    """``data[]`` → open positions; near-zero sizes are not positions."""
    log = log or logger
    positions: list[Position] = []
    for row in _rows(data):
        size = parse_decimal(get_field(row, "positionAmt"))
        if abs(size) < POSITION_EPSILON:
            continue

        side = BINGX_POSITION_SIDE.try_decode(get_field(row, "positionSide"))
        if not side.ok:
            log.warning("Skipping BingX position %s: %s", get_str(row, "symbol"), side.error)
            continue

        positions.append(
            Position(
                symbol=get_str(row, "symbol"),
                position_side=side.value,
                position_size=size,
                entry_price=parse_decimal(get_field(row, "avgPrice")),
                mark_price=parse_decimal(get_field(row, "markPrice")),
                unrealized_pnl=parse_decimal(get_field(row, "unrealizedProfit")),
                leverage=parse_decimal(get_field(row, "leverage")),
                isolated_margin=parse_decimal(get_field(row, "margin")),
                isolated=bool(parse_optional_bool(get_field(row, "isolated"))),
                cumulative_realized_pnl=parse_decimal(get_field(row, "realisedProfit")),
                update_time_ms=parse_millis(get_field(row, "updateTime")),
                exchange=EXCHANGE,
            )
        )
    return positions
