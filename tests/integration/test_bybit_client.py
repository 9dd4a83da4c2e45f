"""Integration tests for the Bybit client: clock skew and cursor pagination."""
from __future__ import annotations

import dataclasses
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yarl
from aiohttp import web
from aiohttp.test_utils import TestServer

from trades_tracker.config import ExchangeConfig, RetryConfig
from trades_tracker.exchanges.bybit import BybitClient
from trades_tracker.models import TradeSource
from trades_tracker.signing import sign_bybit

NOW_MS = 1_700_000_000_000


def _response(body, status: int = 200, headers: dict | None = None):
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.read = AsyncMock(
        return_value=body if isinstance(body, bytes) else (
            body if isinstance(body, str) else json.dumps(body)
        ).encode("utf-8")
    )
    mock_response.headers = headers or {}
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)
    return mock_response


def _mock_session(*outcomes, route=None):
    mock_session = MagicMock()
    if route is not None:
        mock_session.get = MagicMock(side_effect=route)
    else:
        mock_session.get = MagicMock(side_effect=list(outcomes))
    mock_session.close = AsyncMock()
    return mock_session


def _ok(result: dict) -> dict:
    return {"retCode": 0, "retMsg": "OK", "result": result, "time": NOW_MS}


def _timestamp_error(req: int, server: int) -> dict:
    return {
        "retCode": 10002,
        "retMsg": (
            "invalid request, please check your server timestamp or recv_window param. "
            f"req_timestamp[{req}],server_timestamp[{server}],recv_window[10000]"
        ),
        "result": {},
    }


@pytest.fixture()
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def client(
    bybit_config: ExchangeConfig, retry_config: RetryConfig, sleep: AsyncMock
) -> BybitClient:
    return BybitClient(bybit_config, retry_config, sleep=sleep)


def _patched(session):
    return (
        patch("trades_tracker.exchanges.rest.aiohttp.ClientSession", return_value=session),
        patch("trades_tracker.exchanges.rest.aiohttp.TCPConnector"),
        patch("trades_tracker.exchanges.bybit.client.now_unix_millis", return_value=NOW_MS),
    )


class TestSigning:
    @pytest.mark.asyncio
    async def test_headers(self, client: BybitClient, bybit_config: ExchangeConfig) -> None:
        session = _mock_session(_response(_ok({"balance": []})))
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            await client.get_spot_balances()

        url = str(session.get.call_args.args[0])
        headers = session.get.call_args.kwargs["headers"]
        assert url == (
            "https://bybit.example.com/v5/asset/transfer/query-account-coins-balance"
            "?accountType=FUND"
        )
        assert headers == {
            "X-BAPI-API-KEY": bybit_config.api_key,
            "X-BAPI-SIGN": sign_bybit(
                str(NOW_MS), bybit_config.api_key, "10000", "accountType=FUND",
                bybit_config.secret_key,
            ),
            "X-BAPI-SIGN-TYPE": "2",
            "X-BAPI-TIMESTAMP": str(NOW_MS),
            "X-BAPI-RECV-WINDOW": "10000",
        }


class TestClockSkew:
    @pytest.mark.asyncio
    async def test_skew_applied_and_request_retried_once(
        self, client: BybitClient, sleep: AsyncMock
    ) -> None:
        session = _mock_session(
            _response(_timestamp_error(1000, 1500)),
            _response(_ok({"balance": [{"coin": "USDT", "walletBalance": "5"}]})),
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            balances = await client.get_spot_balances()

        assert len(balances) == 1
        assert session.get.call_count == 2
        assert client.clock.offset_ms == 500
        retried_headers = session.get.call_args_list[1].kwargs["headers"]
        assert retried_headers["X-BAPI-TIMESTAMP"] == str(NOW_MS + 500)
        # the resync retry does not back off
        assert all(c.args[0] < 1.0 for c in sleep.await_args_list)

    @pytest.mark.asyncio
    async def test_later_requests_keep_offset(self, client: BybitClient) -> None:
        session = _mock_session(
            _response(_timestamp_error(1000, 1500)),
            _response(_ok({"balance": []})),
            _response(_ok({"balance": []})),
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            await client.get_spot_balances()
            await client.get_futures_balances()

        headers = session.get.call_args_list[2].kwargs["headers"]
        assert headers["X-BAPI-TIMESTAMP"] == str(NOW_MS + 500)

    @pytest.mark.asyncio
    async def test_persisting_error_is_retryable(self, client: BybitClient) -> None:
        session = _mock_session(
            *[_response(_timestamp_error(1000, 1500)) for _ in range(4)]
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            assert await client.get_spot_balances() == []
        # one resync, then three charged attempts
        assert session.get.call_count == 4

    @pytest.mark.asyncio
    async def test_out_of_range_skew_not_applied(self, client: BybitClient) -> None:
        session = _mock_session(_response(_timestamp_error(1000, 61000)))
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            assert await client.get_spot_balances() == []
        assert client.clock.offset_ms == 0
        assert session.get.call_count == 1


class TestOperations:
    @pytest.mark.asyncio
    async def test_positions_exclude_empty_slots(self, client: BybitClient) -> None:
        body = _ok(
            {
                "list": [
                    {"symbol": "BTCUSDT", "side": "", "size": "0"},
                    {"symbol": "ETHUSDT", "side": "Sell", "size": "1.5", "avgPrice": "3000"},
                ],
                "nextPageCursor": "",
            }
        )
        session = _mock_session(_response(body))
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            positions = await client.get_positions()

        assert [p.symbol for p in positions] == ["ETHUSDT"]
        assert "category=linear&settleCoin=USDT" in str(session.get.call_args.args[0])

    @pytest.mark.asyncio
    async def test_futures_balance_query(self, client: BybitClient) -> None:
        body = _ok({"balance": [{"coin": "USDT", "walletBalance": "100", "locked": "30"}]})
        session = _mock_session(_response(body))
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            (balance,) = await client.get_futures_balances()

        assert balance.available_balance == 70.0
        assert str(session.get.call_args.args[0]).endswith("?accountType=UNIFIED&coin=USDT")

    @pytest.mark.asyncio
    async def test_ret_code_error_returns_empty(self, client: BybitClient) -> None:
        session = _mock_session(
            _response({"retCode": 10003, "retMsg": "API key is invalid.", "result": {}})
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            assert await client.get_positions() == []

    @pytest.mark.asyncio
    async def test_futures_history_combines_orders_and_closed_pnl(
        self, client: BybitClient
    ) -> None:
        orders = _ok({"list": [{"orderId": "o1", "positionIdx": 0, "side": "Buy"}]})
        closed = _ok({"list": [{"orderId": "o2", "side": "Sell", "closedPnl": "5"}]})

        def route(request_url, headers=None):
            url = str(request_url)
            if "/v5/order/history" in url:
                assert "category=linear" in url and "limit=50" in url
                return _response(orders)
            if "/v5/position/closed-pnl" in url:
                assert "limit=100" in url
                return _response(closed)
            raise AssertionError(f"unexpected url {url}")

        p1, p2, p3 = _patched(_mock_session(route=route))
        with p1, p2, p3:
            trades = await client.get_futures_trade_history(start_time=1, end_time=2, limit=500)

        assert sorted(t.source.value for t in trades) == ["closed_pnl", "order"]
        closed_row = next(t for t in trades if t.source is TradeSource.CLOSED_PNL)
        assert closed_row.realized_pnl == 5.0

    @pytest.mark.asyncio
    async def test_execution_history(self, client: BybitClient) -> None:
        body = _ok({"list": [{"execId": "e1", "side": "Sell", "execQty": "1"}]})
        session = _mock_session(_response(body))
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            (trade,) = await client.get_futures_execution_history(limit=1000)

        assert trade.trade_id == "e1"
        assert "/v5/execution/list?category=linear&limit=100" in str(session.get.call_args.args[0])


class TestPagination:
    @pytest.mark.asyncio
    async def test_follows_cursor(self, client: BybitClient) -> None:
        session = _mock_session(
            _response(_ok({"list": [{"orderId": "1"}], "nextPageCursor": "page2"})),
            _response(_ok({"list": [{"orderId": "2"}], "nextPageCursor": ""})),
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            trades = await client.get_spot_trade_history()

        assert [t.order_id for t in trades] == ["1", "2"]
        assert "cursor=page2" in str(session.get.call_args_list[1].args[0])

    @pytest.mark.asyncio
    async def test_stops_at_max_pages(self, client: BybitClient) -> None:
        session = _mock_session(
            *[
                _response(_ok({"list": [{"orderId": str(i)}], "nextPageCursor": f"c{i}"}))
                for i in range(5)
            ]
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            trades = await client.get_spot_trade_history()

        # bybit_config.max_pages == 3
        assert session.get.call_count == 3
        assert len(trades) == 3

    @pytest.mark.asyncio
    async def test_failed_page_keeps_earlier_rows(self, client: BybitClient) -> None:
        session = _mock_session(
            _response(_ok({"list": [{"orderId": "1"}], "nextPageCursor": "p2"})),
            _response({"retCode": 10016, "retMsg": "server error", "result": {}}),
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            trades = await client.get_spot_trade_history()
        assert [t.order_id for t in trades] == ["1"]

    @pytest.mark.asyncio
    async def test_cursor_sent_exactly_as_signed(self, client: BybitClient) -> None:
        cursor = "132332%3A1%2C132332%3A1"
        session = _mock_session(
            _response(_ok({"list": [{"orderId": "1"}], "nextPageCursor": cursor})),
            _response(_ok({"list": [{"orderId": "2"}], "nextPageCursor": ""})),
        )
        p1, p2, p3 = _patched(session)
        with p1, p2, p3:
            await client.get_spot_trade_history()

        second = session.get.call_args_list[1]
        url = second.args[0]
        assert isinstance(url, yarl.URL)
        assert url.raw_query_string.endswith(f"&cursor={cursor}")
        assert second.kwargs["headers"]["X-BAPI-SIGN"] == sign_bybit(
            str(NOW_MS), client.config.api_key, "10000", url.raw_query_string,
            client.config.secret_key,
        )


class TestSignedQueryOnTheWire:
    @pytest.mark.asyncio
    async def test_every_page_signature_matches_received_query(
        self, bybit_config: ExchangeConfig, retry_config: RetryConfig
    ) -> None:
        received: list[tuple[str, bool]] = []
        cursors = iter(["132332%3A1%2C132332%3A1", "7%3A2%2C7%3A2", ""])

        async def order_history(request: web.Request) -> web.Response:
            query = request.rel_url.raw_query_string
            expected = sign_bybit(
                request.headers["X-BAPI-TIMESTAMP"],
                request.headers["X-BAPI-API-KEY"],
                request.headers["X-BAPI-RECV-WINDOW"],
                query,
                bybit_config.secret_key,
            )
            matches = expected == request.headers["X-BAPI-SIGN"]
            received.append((query, matches))
            if not matches:
                return web.json_response(
                    {"retCode": 10004, "retMsg": "error sign!", "result": {}}
                )
            return web.json_response(
                _ok(
                    {
                        "list": [{"orderId": str(len(received))}],
                        "nextPageCursor": next(cursors),
                    }
                )
            )

        app = web.Application()
        app.router.add_get("/v5/order/history", order_history)
        async with TestServer(app) as server:
            config = dataclasses.replace(
                bybit_config, base_url=str(server.make_url("/"))
            )
            async with BybitClient(config, retry_config, sleep=AsyncMock()) as client:
                trades = await client.get_spot_trade_history(start_time=1, end_time=2)

        assert [t.order_id for t in trades] == ["1", "2", "3"]
        assert [matches for _, matches in received] == [True, True, True]
        assert received[1][0].endswith("&cursor=132332%3A1%2C132332%3A1")
        assert received[2][0].endswith("&cursor=7%3A2%2C7%3A2")
