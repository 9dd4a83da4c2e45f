"""Per-exchange processing: one client, one full data run."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..config import ExchangeConfig
from ..interfaces.exchange_client import ExchangeClient
from ..models import Balance, FuturesBalance, FuturesTrade, Position, Trade
from .history import ChunkedHistoryFetcher

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ExchangeConfig], ExchangeClient]


class ProcessingStatus(Enum):
    SUCCESS = "success"
    NOT_CONFIGURED = "not_configured"
    FAILED = "failed"


@dataclass
class ExchangeResult:
    """Everything fetched from one exchange, plus how the run ended."""

    exchange: str
    status: ProcessingStatus = ProcessingStatus.SUCCESS
    error: str = ""
    spot_balances: list[Balance] = field(default_factory=list)
    futures_balances: list[FuturesBalance] = field(default_factory=list)
    spot_trades: list[Trade] = field(default_factory=list)
    futures_trades: list[FuturesTrade] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.status is ProcessingStatus.SUCCESS


class ExchangeProcessor:
    """Fetch balances, chunked trade history and positions for one exchange."""

    def __init__(
        self,
        name: str,
        config: ExchangeConfig,
        client_factory: ClientFactory,
        history: ChunkedHistoryFetcher | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._name = name
        self._config = config
        self._client_factory = client_factory
        self._history = history or ChunkedHistoryFetcher()
        self._log = log or logger

    @property
    def exchange_name(self) -> str:
        return self._name

    async def process_exchange_data(self) -> ExchangeResult:
        result = ExchangeResult(exchange=self._name)

        if not self._config.is_configured:
            self._log.warning(
                "%s API credentials not configured. Skipping %s processing.",
                self._name, self._name,
            )
            result.status = ProcessingStatus.NOT_CONFIGURED
            result.error = "API credentials not configured"
            return result

        self._log.info("Processing %s exchange data...", self._name)
        try:
            async with self._client_factory(self._config) as client:
                result.spot_balances = await client.get_spot_balances()
                result.futures_balances = await client.get_futures_balances()
                result.spot_trades = await self._history.fetch(
                    lambda start, end: client.get_spot_trade_history(
                        start_time=start, end_time=end
                    ),
                    f"{self._name} spot trades",
                )
                result.futures_trades = await self._history.fetch(
                    lambda start, end: client.get_futures_trade_history(
                        start_time=start, end_time=end
                    ),
                    f"{self._name} futures trades",
                )
                result.positions = await client.get_positions()
        except Exception as e:
            self._log.error("Error processing %s data: %s", self._name, e)
            result.status = ProcessingStatus.FAILED
            result.error = str(e)
            return result

        self._log.info("%s data processing completed successfully", self._name)
        return result
