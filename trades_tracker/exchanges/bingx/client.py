"""BingX REST client (spot + perpetual swap)."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from ...models import Balance, FuturesBalance, FuturesTrade, Position, Trade
from ...signing import build_query_string, now_unix_millis, sign_bingx
from ..rest import SignedRestClient
from . import parser

logger = logging.getLogger(__name__)

SPOT_BALANCE_PATH = "/openApi/spot/v1/account/balance"
FUTURES_BALANCE_PATH = "/openApi/swap/v2/user/balance"
SPOT_HISTORY_PATH = "/openApi/spot/v1/trade/historyOrders"
FUTURES_HISTORY_PATH = "/openApi/swap/v2/trade/allOrders"
POSITIONS_PATH = "/openApi/swap/v2/user/positions"

MAX_HISTORY_LIMIT = 1000


def _history_params(
    symbol: str | None, start_time: int | None, end_time: int | None, limit: int
) -> dict[str, Any]:
    return {
        "symbol": symbol,
        "startTime": start_time,
        "endTime": end_time,
        "limit": min(limit, MAX_HISTORY_LIMIT),
    }


class BingXClient(SignedRestClient):
    """BingX API client.

    Query strings are signed as sent: ``params&timestamp=<ms>``, then
    ``&signature=<hex>`` is appended. The key travels in ``X-BX-APIKEY``.
    """

    exchange_name = "BingX"

    def __init__(self, config, retry=None, *, log: logging.Logger | None = None, **kwargs) -> None:
        super().__init__(config, retry, log=log or logger, **kwargs)

    def _sign_request(self, params: Mapping[str, Any]) -> tuple[str, dict[str, str]]:
        query = build_query_string(params)
        timestamp = f"timestamp={now_unix_millis()}"
        query = f"{query}&{timestamp}" if query else timestamp
        signature = sign_bingx(query, self.config.secret_key)
        return f"{query}&signature={signature}", {"X-BX-APIKEY": self.config.api_key}

    async def _get_data(self, path: str, params: Mapping[str, Any], label: str) -> Any:
        """Return the envelope's ``data``, or ``None`` on any failure."""
        payload = await self._request(path, params, label)
        if payload is None:
            return None
        envelope = parser.BingXResponse.from_payload(payload)
        if not envelope.is_success:
            self._log.error(
                "BingX API error for %s: code=%s msg=%s", label, envelope.code, envelope.msg
            )
            return None
        return envelope.data

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get_spot_balances(self) -> list[Balance]:
        try:
            data = await self._get_data(SPOT_BALANCE_PATH, {}, "spot balances")
            balances = parser.parse_spot_balances(data) if data is not None else []
            self._log.info("Retrieved %d BingX spot balances", len(balances))
            return balances
        except Exception as e:
            self._log.error("Error fetching BingX spot balances: %s", e)
            return []

    async def get_futures_balances(self) -> list[FuturesBalance]:
        try:
            data = await self._get_data(FUTURES_BALANCE_PATH, {}, "futures balances")
            balances = parser.parse_futures_balances(data) if data is not None else []
            self._log.info("Retrieved %d BingX futures balances", len(balances))
            return balances
        except Exception as e:
            self._log.error("Error fetching BingX futures balances: %s", e)
            return []

    async def get_spot_trade_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 500,
    ) -> list[Trade]:
        try:
            data = await self._get_data(
                SPOT_HISTORY_PATH,
                _history_params(symbol, start_time, end_time, limit),
                "spot trade history",
            )
            trades = parser.parse_spot_orders(data) if data is not None else []
            self._log.info("Retrieved %d BingX spot trades", len(trades))
            return trades
        except Exception as e:
            self._log.error("Error fetching BingX spot trade history: %s", e)
            return []

    async def get_futures_trade_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 500,
    ) -> list[FuturesTrade]:
        try:
            data = await self._get_data(
                FUTURES_HISTORY_PATH,
                _history_params(symbol, start_time, end_time, limit),
                "futures trade history",
            )
            trades = parser.parse_futures_orders(data, self._log) if data is not None else []
            self._log.info("Retrieved %d BingX futures trades", len(trades))
            return trades
        except Exception as e:
            self._log.error("Error fetching BingX futures trade history: %s", e)
            return []

    async def get_positions(self, symbol: str | None = None) -> list[Position]:
        try:
            data = await self._get_data(POSITIONS_PATH, {"symbol": symbol}, "positions")
            positions = parser.parse_positions(data, self._log) if data is not None else []
            self._log.info("Retrieved %d BingX open positions", len(positions))
            return positions
        except Exception as e:
            self._log.error("Error fetching BingX positions: %s", e)
            return []
