"""Bybit v5 REST client (FUND / UNIFIED accounts, spot + linear)."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from ...models import Balance, FuturesBalance, FuturesTrade, Position, Trade
from ...signing import build_query_string, now_unix_millis, sign_bybit
from ...transport import AttemptState, HttpReply
from ..rest import SignedRestClient
from . import parser
from .clock import ClockSkewCompensator

logger = logging.getLogger(__name__)

ACCOUNT_COINS_PATH = "/v5/asset/transfer/query-account-coins-balance"
ORDER_HISTORY_PATH = "/v5/order/history"
CLOSED_PNL_PATH = "/v5/position/closed-pnl"
EXECUTION_PATH = "/v5/execution/list"
POSITIONS_PATH = "/v5/position/list"

ORDER_HISTORY_LIMIT = 50
CLOSED_PNL_LIMIT = 100
EXECUTION_LIMIT = 100


class BybitClient(SignedRestClient):
    """Bybit API client.

    Signs ``timestamp + api_key + recv_window + query`` and sends the parts in
    the ``X-BAPI-*`` headers. Outgoing timestamps are shifted by the learned
    clock offset; history endpoints follow ``nextPageCursor``.
    """

    exchange_name = "Bybit"

    def __init__(
        self,
        config,
        retry=None,
        *,
        log: logging.Logger | None = None,
        clock: ClockSkewCompensator | None = None,
        **kwargs,
    ) -> None:
        super().__init__(config, retry, log=log or logger, **kwargs)
        self.clock = clock or ClockSkewCompensator(log=self._log)
        self.recv_window = str(config.recv_window)
        self.max_pages = config.max_pages

    def _sign_request(self, params: Mapping[str, Any]) -> tuple[str, dict[str, str]]:
        query = build_query_string(params)
        timestamp = str(self.clock.adjust(now_unix_millis()))
        signature = sign_bybit(
            timestamp, self.config.api_key, self.recv_window, query, self.config.secret_key
        )
        headers = {
            "X-BAPI-API-KEY": self.config.api_key,
            "X-BAPI-SIGN": signature,
            "X-BAPI-SIGN-TYPE": "2",
            "X-BAPI-TIMESTAMP": timestamp,
            "X-BAPI-RECV-WINDOW": self.recv_window,
        }
        return query, headers

    def _inspect(self, reply: HttpReply) -> AttemptState:
        if self.clock.observe(reply.body):
            self._log.info(
                "Retrying Bybit request with %dms clock compensation", self.clock.offset_ms
            )
            return AttemptState.RESYNCED
        if self.clock.detected and self.clock.is_timestamp_error(reply.body):
            self._log.warning("Bybit timestamp error persists after clock compensation")
            return AttemptState.RETRYABLE
        return AttemptState.SUCCEEDED

    async def _get_response(
        self, path: str, params: Mapping[str, Any], label: str
    ) -> parser.BybitResponse | None:
        payload = await self._request(path, params, label)
        if payload is None:
            return None
        envelope = parser.BybitResponse.from_payload(payload)
        if not envelope.is_success:
            self._log.error(
                "Bybit API error for %s: retCode=%s retMsg=%s",
                label, envelope.ret_code, envelope.ret_msg,
            )
            return None
        return envelope

    async def _get_rows(
        self, path: str, params: dict[str, Any], label: str
    ) -> list[Mapping[str, Any]]:
        """Collect ``result.list`` across cursor pages, up to ``max_pages``."""
        rows: list[Mapping[str, Any]] = []
        cursor = ""
        for page in range(1, self.max_pages + 1):
            page_params = dict(params)
            if cursor:
                page_params["cursor"] = cursor
            envelope = await self._get_response(path, page_params, label)
            if envelope is None:
                break
            rows.extend(envelope.rows)
            cursor = envelope.next_page_cursor
            if not cursor:
                break
            if page == self.max_pages:
                self._log.warning(
                    "Stopped %s after %d pages, more data available", label, self.max_pages
                )
        return rows

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get_spot_balances(self) -> list[Balance]:
        try:
            envelope = await self._get_response(
                ACCOUNT_COINS_PATH, {"accountType": "FUND"}, "spot balances"
            )
            balances = parser.parse_spot_balances(envelope.result) if envelope else []
            self._log.info("Retrieved %d Bybit spot balances", len(balances))
            return balances
        except Exception as e:
            self._log.error("Error fetching Bybit spot balances: %s", e)
            return []

    async def get_futures_balances(self) -> list[FuturesBalance]:
        try:
            envelope = await self._get_response(
                ACCOUNT_COINS_PATH,
                {"accountType": "UNIFIED", "coin": "USDT"},
                "futures balances",
            )
            balances = parser.parse_futures_balances(envelope.result) if envelope else []
            self._log.info("Retrieved %d Bybit futures balances", len(balances))
            return balances
        except Exception as e:
            self._log.error("Error fetching Bybit futures balances: %s", e)
            return []

    async def get_spot_trade_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = ORDER_HISTORY_LIMIT,
    ) -> list[Trade]:
        try:
            rows = await self._get_rows(
                ORDER_HISTORY_PATH,
                _history_params("spot", symbol, start_time, end_time, limit, ORDER_HISTORY_LIMIT),
                "spot order history",
            )
            trades = parser.parse_spot_orders(rows)
            self._log.info("Retrieved %d Bybit spot trades", len(trades))
            return trades
        except Exception as e:
            self._log.error("Error fetching Bybit spot trade history: %s", e)
            return []

    async def get_futures_order_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = ORDER_HISTORY_LIMIT,
    ) -> list[FuturesTrade]:
        try:
            rows = await self._get_rows(
                ORDER_HISTORY_PATH,
                _history_params("linear", symbol, start_time, end_time, limit, ORDER_HISTORY_LIMIT),
                "futures order history",
            )
            return parser.parse_futures_orders(rows, self._log)
        except Exception as e:
            self._log.error("Error fetching Bybit futures order history: %s", e)
            return []

    async def get_closed_pnl(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = CLOSED_PNL_LIMIT,
    ) -> list[FuturesTrade]:
        try:
            rows = await self._get_rows(
                CLOSED_PNL_PATH,
                _history_params("linear", symbol, start_time, end_time, limit, CLOSED_PNL_LIMIT),
                "closed PnL",
            )
            return parser.parse_closed_pnl(rows, self._log)
        except Exception as e:
            self._log.error("Error fetching Bybit closed PnL: %s", e)
            return []

    async def get_futures_trade_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = ORDER_HISTORY_LIMIT,
    ) -> list[FuturesTrade]:
        """Order history and closed-PnL records, as separate rows.

        Both endpoints are queried concurrently; the shared rate limiter
        still spaces the individual requests.
        """
        try:
            orders, closed = await asyncio.gather(
                self.get_futures_order_history(symbol, start_time, end_time, limit),
                self.get_closed_pnl(symbol, start_time, end_time, CLOSED_PNL_LIMIT),
            )
            trades = orders + closed
            self._log.info(
                "Retrieved %d Bybit futures trades (%d orders, %d closed PnL)",
                len(trades), len(orders), len(closed),
            )
            return trades
        except Exception as e:
            self._log.error("Error fetching Bybit futures trade history: %s", e)
            return []

    async def get_futures_execution_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = EXECUTION_LIMIT,
    ) -> list[FuturesTrade]:
        try:
            rows = await self._get_rows(
                EXECUTION_PATH,
                _history_params("linear", symbol, start_time, end_time, limit, EXECUTION_LIMIT),
                "execution history",
            )
            trades = parser.parse_executions(rows, self._log)
            self._log.info("Retrieved %d Bybit executions", len(trades))
            return trades
        except Exception as e:
            self._log.error("Error fetching Bybit execution history: %s", e)
            return []

    async def get_positions(self, symbol: str | None = None) -> list[Position]:
        try:
            params: dict[str, Any] = {"category": "linear", "settleCoin": "USDT"}
            if symbol:
                params["symbol"] = symbol
            rows = await self._get_rows(POSITIONS_PATH, params, "positions")
            positions = parser.parse_positions(rows, self._log)
            self._log.info("Retrieved %d Bybit open positions", len(positions))
            return positions
        except Exception as e:
            self._log.error("Error fetching Bybit positions: %s", e)
            return []


def _history_params(
    category: str,
    symbol: str | None,
    start_time: int | None,
    end_time: int | None,
    limit: int,
    max_limit: int,
) -> dict[str, Any]:
    return {
        "category": category,
        "symbol": symbol,
        "startTime": start_time,
        "endTime": end_time,
        "limit": min(limit, max_limit),
    }
