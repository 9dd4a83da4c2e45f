"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from trades_tracker.config import (
    AppConfig,
    ExchangeConfig,
    HistoryConfig,
    ReportConfig,
    RetryConfig,
    RunConfig,
)
from trades_tracker.models import (
    Balance,
    FuturesBalance,
    FuturesTrade,
    Position,
    PositionSide,
    Trade,
    TradeSource,
)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def bingx_config() -> ExchangeConfig:
    return ExchangeConfig(
        name="bingx",
        api_key="bingx-test-key-0001",
        secret_key="bingx-test-secret",
        base_url="https://bingx.example.com",
        requests_per_second=5,
    )


@pytest.fixture()
def bybit_config() -> ExchangeConfig:
    return ExchangeConfig(
        name="bybit",
        api_key="bybit-test-key-0001",
        secret_key="bybit-test-secret",
        base_url="https://bybit.example.com",
        requests_per_second=10,
        recv_window=10000,
        max_pages=3,
    )


@pytest.fixture()
def retry_config() -> RetryConfig:
    return RetryConfig(attempts=3, delay_seconds=2.0, max_rate_limit_waits=2, request_timeout=5)


@pytest.fixture()
def sample_app_config(
    bingx_config: ExchangeConfig,
    bybit_config: ExchangeConfig,
    retry_config: RetryConfig,
    tmp_path: Path,
) -> AppConfig:
    return AppConfig(
        exchanges={"bingx": bingx_config, "bybit": bybit_config},
        retry=retry_config,
        history=HistoryConfig(lookback_days=30, chunk_days=6, chunk_pause_seconds=0),
        run=RunConfig(concurrent=False, deadline_seconds=0),
        report=ReportConfig(output_directory=str(tmp_path / "reports")),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_balance() -> Balance:
    return Balance(asset="USDT", available=100.0, locked=50.0, exchange="BingX")


@pytest.fixture()
def sample_futures_balance() -> FuturesBalance:
    return FuturesBalance(
        asset="USDT",
        balance=1000.0,
        available_balance=800.0,
        cross_unrealized_pnl=12.5,
        max_withdraw_amount=780.0,
        exchange="BingX",
    )


@pytest.fixture()
def sample_trade() -> Trade:
    return Trade(
        symbol="BTC-USDT",
        order_id="111",
        side="BUY",
        order_type="LIMIT",
        quantity=0.5,
        price=60000.0,
        executed_quantity=0.5,
        cumulative_quote_quantity=30000.0,
        status="FILLED",
        time_in_force="GTC",
        trade_time_ms=1_700_000_000_000,
        update_time_ms=1_700_000_001_000,
        exchange="BingX",
    )


@pytest.fixture()
def sample_futures_trade() -> FuturesTrade:
    return FuturesTrade(
        symbol="ETHUSDT",
        order_id="222",
        side="SELL",
        position_side=PositionSide.LONG,
        order_type="Market",
        quantity=1.0,
        price=0.0,
        avg_price=3000.0,
        executed_quantity=1.0,
        cumulative_quote_quantity=3000.0,
        realized_pnl=45.0,
        fee=1.2,
        fee_asset="USDT",
        status="CLOSED",
        time_in_force="IOC",
        trade_time_ms=1_700_000_000_000,
        update_time_ms=1_700_000_000_000,
        source=TradeSource.CLOSED_PNL,
        leverage="10X",
        exchange="Bybit",
    )


@pytest.fixture()
def sample_position() -> Position:
    return Position(
        symbol="BTCUSDT",
        position_side=PositionSide.SHORT,
        position_size=0.01,
        entry_price=65000.0,
        mark_price=64000.0,
        unrealized_pnl=10.0,
        leverage=5.0,
        isolated_margin=130.0,
        update_time_ms=1_700_000_000_000,
        exchange="Bybit",
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    exchanges:
      bingx:
        api_key: "bx-key"
        secret_key: "bx-secret"
        requests_per_second: 5
      bybit:
        api_key: "by-key"
        secret_key: "by-secret"
        base_url: "https://api-testnet.bybit.com/"
        requests_per_second: 10
        recv_window: 5000
        max_pages: 4
    retry:
      attempts: 4
      delay_seconds: 1.5
      max_rate_limit_waits: 6
      request_timeout: 20
    history:
      lookback_days: 30
      chunk_days: 6
      chunk_pause_seconds: 0.5
    run:
      concurrent: true
      deadline_seconds: 120
    report:
      output_directory: "./out"
      file_name_prefix: "Test_"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
