"""Portfolio aggregation: runs every exchange processor and merges results."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..config import AppConfig, ExchangeConfig
from ..exchanges import BingXClient, BybitClient
from ..interfaces.processor import ExchangeProcessor as ProcessorProtocol
from ..models import Balance, FuturesBalance, FuturesTrade, Position, Trade
from .history import ChunkedHistoryFetcher
from .processor import ExchangeProcessor, ExchangeResult, ProcessingStatus

logger = logging.getLogger(__name__)

# Registry of exchange client classes keyed by config name.
_CLIENT_FACTORIES: dict[str, Any] = {
    "bingx": BingXClient,
    "bybit": BybitClient,
}


@dataclass
class PortfolioData:
    spot_balances: list[Balance] = field(default_factory=list)
    futures_balances: list[FuturesBalance] = field(default_factory=list)
    spot_trades: list[Trade] = field(default_factory=list)
    futures_trades: list[FuturesTrade] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)
    processed: list[str] = field(default_factory=list)
    not_configured: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def has_any_data(self) -> bool:
        return bool(
            self.spot_balances
            or self.futures_balances
            or self.spot_trades
            or self.futures_trades
            or self.positions
        )

    def merge(self, result: ExchangeResult) -> None:
        self.spot_balances.extend(result.spot_balances)
        self.futures_balances.extend(result.futures_balances)
        self.spot_trades.extend(result.spot_trades)
        self.futures_trades.extend(result.futures_trades)
        self.positions.extend(result.positions)
        self.processed.append(result.exchange)

    def summary_lines(self) -> list[str]:
        """Human-readable per-collection counts, grouped by exchange."""
        lines = [f"Exchanges processed: {', '.join(self.processed) or 'none'}"]
        if self.not_configured:
            lines.append(f"Not configured: {', '.join(self.not_configured)}")
        if self.failed:
            lines.append(f"Failed: {', '.join(self.failed)}")

        collections = (
            ("Spot balances", self.spot_balances),
            ("Futures balances", self.futures_balances),
            ("Spot trades", self.spot_trades),
            ("Futures trades", self.futures_trades),
            ("Open positions", self.positions),
        )
        for title, records in collections:
            per_exchange = Counter(record.exchange for record in records)
            detail = ", ".join(f"{name}: {count}" for name, count in sorted(per_exchange.items()))
            lines.append(f"{title}: {len(records)}" + (f" ({detail})" if detail else ""))

        if self.positions:
            total_pnl = sum(p.unrealized_pnl for p in self.positions)
            lines.append(f"Unrealized PnL: {total_pnl:,.2f}")
        return lines


class PortfolioAggregator:
    """Run exchange processors and combine their successful results.

    Processors share no state, so ``concurrent=True`` may run them together.
    With a deadline, a processor still running when the remaining time runs
    out is cancelled and counted as failed.
    """

    def __init__(
        self,
        processors: Sequence[ProcessorProtocol],
        concurrent: bool = False,
        deadline_seconds: float | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._processors = list(processors)
        self._concurrent = concurrent
        self._deadline_seconds = deadline_seconds or None
        self._log = log or logger

    async def process_all(self) -> PortfolioData:
        loop = asyncio.get_running_loop()
        deadline = (
            loop.time() + self._deadline_seconds if self._deadline_seconds else None
        )

        if self._concurrent:
            results = await asyncio.gather(
                *(self._run_one(p, deadline) for p in self._processors)
            )
        else:
            results = [await self._run_one(p, deadline) for p in self._processors]

        data = PortfolioData()
        for result in results:
            if result.status is ProcessingStatus.SUCCESS:
                data.merge(result)
                self._log.info("%s processing completed successfully", result.exchange)
            elif result.status is ProcessingStatus.NOT_CONFIGURED:
                data.not_configured.append(result.exchange)
            else:
                data.failed.append(result.exchange)
                self._log.warning("%s processing failed: %s", result.exchange, result.error)

        self._log.info(
            "Processed data from %d exchanges: %s",
            len(data.processed), ", ".join(data.processed),
        )
        return data

    async def _run_one(
        self, processor: ProcessorProtocol, deadline: float | None
    ) -> ExchangeResult:
        name = processor.exchange_name
        self._log.info("Processing %s data...", name)
        try:
            if deadline is None:
                return await processor.process_exchange_data()
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                raise asyncio.TimeoutError
            return await asyncio.wait_for(processor.process_exchange_data(), remaining)
        except asyncio.TimeoutError:
            self._log.error("%s did not finish before the deadline", name)
            return ExchangeResult(
                exchange=name, status=ProcessingStatus.FAILED, error="deadline exceeded"
            )
        except Exception as e:
            self._log.error("Unexpected error processing %s: %s", name, e)
            return ExchangeResult(exchange=name, status=ProcessingStatus.FAILED, error=str(e))


def build_processors(config: AppConfig) -> list[ExchangeProcessor]:
    """One processor per configured exchange, in config order."""
    history = ChunkedHistoryFetcher(
        config.history.lookback_days,
        config.history.chunk_days,
        config.history.chunk_pause_seconds,
    )
    processors: list[ExchangeProcessor] = []
    for name, exchange_cfg in config.exchanges.items():
        client_cls = _CLIENT_FACTORIES.get(name)
        if client_cls is None:
            logger.warning("No client for exchange '%s'", name)
            continue

        def factory(cfg: ExchangeConfig, _cls=client_cls):
            return _cls(cfg, config.retry)

        processors.append(
            ExchangeProcessor(client_cls.exchange_name, exchange_cfg, factory, history)
        )
    return processors
