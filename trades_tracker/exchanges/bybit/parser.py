"""Bybit v5 response parsing: pure functions, no I/O."""
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
    TradeSource,
)
from ..decoding import (
    BYBIT_CLOSED_PNL_SIDE,
    BYBIT_EXECUTION_SIDE,
    BYBIT_POSITION_INDEX,
    BYBIT_POSITION_LIST_SIDE,
    SideMapping,
    get_field,
    get_str,
    parse_decimal,
    parse_millis,
    parse_optional_bool,
    parse_optional_decimal,
)

logger = logging.getLogger(__name__)

EXCHANGE = "Bybit"
FEE_ASSET = "USDT"


@dataclass(frozen=True)
class BybitResponse:
    """Bybit envelope: ``{"retCode": 0, "retMsg": "OK", "result": {...}}``."""

    ret_code: int
    ret_msg: str
    result: Any
    time: int = 0

    @property
    def is_success(self) -> bool:
        return self.ret_code == 0

    @property
    def rows(self) -> list[Mapping[str, Any]]:
        return _rows(get_field(self.result, "list"))

    @property
    def next_page_cursor(self) -> str:
        return get_str(self.result, "nextPageCursor")

    @classmethod
    def from_payload(cls, payload: Any) -> BybitResponse:
        if not isinstance(payload, Mapping):
            raise MalformedResponseError("Bybit envelope is not an object", raw=str(payload))
        ret_code = parse_optional_decimal(get_field(payload, "retCode"))
        return cls(
            ret_code=-1 if ret_code is None else int(ret_code),
            ret_msg=get_str(payload, "retMsg"),
            result=get_field(payload, "result"),
            time=parse_millis(get_field(payload, "time")),
        )


def _rows(value: Any) -> list[Mapping[str, Any]]:
    if isinstance(value, list):
        return [row for row in value if isinstance(row, Mapping)]
    return []


def _decode_side(
    table: SideMapping, row: Mapping[str, Any], field: str, log: logging.Logger
):
    result = table.try_decode(get_field(row, field))
    if not result.ok:
        log.warning(
            "Skipping Bybit row %s/%s: %s",
            get_str(row, "symbol"), get_str(row, "orderId"), result.error,
        )
    return result.value


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


def parse_spot_balances(result: Any) -> list[Balance]:
    """FUND account coins → non-zero balances."""
    balances: list[Balance] = []
    for row in _rows(get_field(result, "balance")):
        available = parse_decimal(get_field(row, "walletBalance"))
        locked = parse_decimal(get_field(row, "locked"))
        if available + locked <= 0:
            continue
        balances.append(
            Balance(
                asset=get_str(row, "coin"),
                available=available,
                locked=locked,
                exchange=EXCHANGE,
            )
        )
    return balances


def parse_futures_balances(result: Any) -> list[FuturesBalance]:
    """UNIFIED account coins; available is wallet minus locked."""
    balances: list[FuturesBalance] = []
    for row in _rows(get_field(result, "balance")):
        wallet = parse_decimal(get_field(row, "walletBalance"))
        locked = parse_decimal(get_field(row, "locked"))
        transfer = parse_optional_decimal(get_field(row, "transferBalance"))
        available = wallet - locked
        balances.append(
            FuturesBalance(
                asset=get_str(row, "coin"),
                balance=wallet,
                available_balance=available,
                cross_unrealized_pnl=0.0,
                max_withdraw_amount=available if transfer is None else transfer,
                exchange=EXCHANGE,
            )
        )
    return balances


# ---------------------------------------------------------------------------
# Trade history
# ---------------------------------------------------------------------------


def _order_amounts(row: Mapping[str, Any]) -> tuple[float, float, float, float]:
    """Return ``(price, avg_price, executed, cumulative_quote)`` for an order row.

    A zero ``avgPrice`` falls back to ``price``; a zero ``cumExecValue`` is
    rebuilt from the executed quantity.
    """
    price = parse_decimal(get_field(row, "price"))
    avg_price = parse_decimal(get_field(row, "avgPrice"))
    if avg_price <= 0:
        avg_price = price
    executed = parse_decimal(get_field(row, "cumExecQty"))
    cumulative = parse_decimal(get_field(row, "cumExecValue"))
    if cumulative <= 0:
        cumulative = executed * avg_price
    return price, avg_price, executed, cumulative


def parse_spot_orders(rows: list[Mapping[str, Any]]) -> list[Trade]:
    trades: list[Trade] = []
    for row in rows:
        price, _, executed, cumulative = _order_amounts(row)
        trades.append(
            Trade(
                symbol=get_str(row, "symbol"),
                order_id=get_str(row, "orderId"),
                side=get_str(row, "side"),
                order_type=get_str(row, "orderType"),
                quantity=parse_decimal(get_field(row, "qty")),
                price=price,
                executed_quantity=executed,
                cumulative_quote_quantity=cumulative,
                status=get_str(row, "orderStatus"),
                time_in_force=get_str(row, "timeInForce"),
                trade_time_ms=parse_millis(get_field(row, "createdTime")),
                update_time_ms=parse_millis(get_field(row, "updatedTime")),
                fee=abs(parse_decimal(get_field(row, "cumExecFee"))),
                exchange=EXCHANGE,
            )
        )
    return trades


def parse_futures_orders(
    rows: list[Mapping[str, Any]], log: logging.Logger | None = None
) -> list[FuturesTrade]:
    """Linear order history; position side comes from ``positionIdx``."""
    log = log or logger
    trades: list[FuturesTrade] = []
    for row in rows:
        position_side = _decode_side(BYBIT_POSITION_INDEX, row, "positionIdx", log)
        if position_side is None:
            continue
        price, avg_price, executed, cumulative = _order_amounts(row)
        stop_price = parse_decimal(get_field(row, "stopPrice"))
        trades.append(
            FuturesTrade(
                symbol=get_str(row, "symbol"),
                order_id=get_str(row, "orderId"),
                side=get_str(row, "side").upper(),
                position_side=position_side,
                order_type=get_str(row, "orderType"),
                quantity=parse_decimal(get_field(row, "qty")),
                price=price,
                avg_price=avg_price,
                executed_quantity=executed,
                cumulative_quote_quantity=cumulative,
                stop_price=stop_price if stop_price > 0 else None,
                fee=abs(parse_decimal(get_field(row, "cumExecFee"))),
                fee_asset=FEE_ASSET,
                status=get_str(row, "orderStatus"),
                time_in_force=get_str(row, "timeInForce"),
                trade_time_ms=parse_millis(get_field(row, "createdTime")),
                update_time_ms=parse_millis(get_field(row, "updatedTime")),
                reduce_only=parse_optional_bool(get_field(row, "reduceOnly")),
                client_order_id=get_str(row, "orderLinkId") or None,
                source=TradeSource.ORDER,
                exchange=EXCHANGE,
            )
        )
    return trades


def parse_closed_pnl(
    rows: list[Mapping[str, Any]], log: logging.Logger | None = None
) -> list[FuturesTrade]:
    """Closed-PnL records; ``side`` is the closing order's side."""
    log = log or logger
    trades: list[FuturesTrade] = []
    for row in rows:
        position_side = _decode_side(BYBIT_CLOSED_PNL_SIDE, row, "side", log)
        if position_side is None:
            continue
        quantity = parse_decimal(get_field(row, "qty"))
        closed_size = parse_optional_decimal(get_field(row, "closedSize"))
        avg_price = parse_optional_decimal(get_field(row, "avgExitPrice"))
        if avg_price is None:
            avg_price = parse_decimal(get_field(row, "avgEntryPrice"))
        leverage = get_str(row, "leverage")
        fee = parse_decimal(get_field(row, "openFee")) + parse_decimal(
            get_field(row, "closeFee")
        )
        trades.append(
            FuturesTrade(
                symbol=get_str(row, "symbol"),
                order_id=get_str(row, "orderId"),
                side=get_str(row, "side").upper(),
                position_side=position_side,
                order_type=get_str(row, "orderType"),
                quantity=quantity,
                price=parse_decimal(get_field(row, "orderPrice")),
                avg_price=avg_price,
                executed_quantity=quantity if closed_size is None else closed_size,
                cumulative_quote_quantity=parse_decimal(get_field(row, "cumExitValue")),
                realized_pnl=parse_decimal(get_field(row, "closedPnl")),
                fee=fee,
                fee_asset=FEE_ASSET,
                status="CLOSED",
                time_in_force="IOC",
                trade_time_ms=parse_millis(get_field(row, "createdTime")),
                update_time_ms=parse_millis(get_field(row, "updatedTime")),
                leverage=f"{leverage}X" if leverage else None,
                source=TradeSource.CLOSED_PNL,
                exchange=EXCHANGE,
            )
        )
    return trades


def parse_executions(
    rows: list[Mapping[str, Any]], log: logging.Logger | None = None
) -> list[FuturesTrade]:
    """Individual fills; each carries its own ``closedPnl``."""
    log = log or logger
    trades: list[FuturesTrade] = []
    for row in rows:
        position_side = _decode_side(BYBIT_EXECUTION_SIDE, row, "side", log)
        if position_side is None:
            continue
        quantity = parse_decimal(get_field(row, "execQty"))
        price = parse_decimal(get_field(row, "execPrice"))
        exec_time = parse_millis(get_field(row, "execTime"))
        trades.append(
            FuturesTrade(
                symbol=get_str(row, "symbol"),
                order_id=get_str(row, "orderId"),
                trade_id=get_str(row, "execId"),
                side=get_str(row, "side").upper(),
                position_side=position_side,
                order_type=get_str(row, "orderType"),
                quantity=quantity,
                price=price,
                avg_price=price,
                executed_quantity=quantity,
                cumulative_quote_quantity=parse_decimal(get_field(row, "execValue")),
                realized_pnl=parse_decimal(get_field(row, "closedPnl")),
                fee=parse_decimal(get_field(row, "execFee")),
                fee_asset=FEE_ASSET,
                status="FILLED",
                time_in_force="IOC",
                trade_time_ms=exec_time,
                update_time_ms=exec_time,
                source=TradeSource.EXECUTION,
                exchange=EXCHANGE,
            )
        )
    return trades


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


def parse_positions(
    rows: list[Mapping[str, Any]], log: logging.Logger | None = None
) -> list[Position]:
    """Open linear positions.

    Empty slots come back with ``size="0"`` and ``side=""``, so the size
    filter runs before the side is decoded.
    """
    log = log or logger
    positions: list[Position] = []
    for row in rows:
        size = parse_decimal(get_field(row, "size"))
        if abs(size) < POSITION_EPSILON:
            continue
        position_side = _decode_side(BYBIT_POSITION_LIST_SIDE, row, "side", log)
        if position_side is None:
            continue
        positions.append(
            Position(
                symbol=get_str(row, "symbol"),
                position_side=position_side,
                position_size=size,
                entry_price=parse_decimal(get_field(row, "avgPrice")),
                mark_price=parse_decimal(get_field(row, "markPrice")),
                unrealized_pnl=parse_decimal(get_field(row, "unrealisedPnl")),
                leverage=parse_decimal(get_field(row, "leverage")),
                isolated_margin=parse_decimal(get_field(row, "positionIM")),
                isolated=parse_millis(get_field(row, "tradeMode")) == 1,
                cumulative_realized_pnl=parse_decimal(get_field(row, "cumRealisedPnl")),
                update_time_ms=parse_millis(get_field(row, "updatedTime")),
                exchange=EXCHANGE,
            )
        )
    return positions
