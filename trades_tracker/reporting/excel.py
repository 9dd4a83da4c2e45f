"""Spreadsheet export of a portfolio snapshot (openpyxl)."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

import openpyxl
from openpyxl.styles import Font

from ..config import ReportConfig
from ..models import PositionSide, TradeSource
from ..services.portfolio import PortfolioData

logger = logging.getLogger(__name__)

HEADER_FONT = Font(name="Calibri", bold=True, size=11)

Column = tuple[str, Callable[[Any], Any]]


def _naive(value: datetime) -> datetime:
    """openpyxl rejects tz-aware datetimes; cells hold naive UTC."""
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _cell_value(value: Any) -> Any:
    if isinstance(value, (PositionSide, TradeSource)):
        return value.value
    if isinstance(value, datetime):
        return _naive(value)
    return value


SPOT_BALANCE_COLUMNS: list[Column] = [
    ("Exchange", lambda b: b.exchange),
    ("Asset", lambda b: b.asset),
    ("Available", lambda b: b.available),
    ("Locked", lambda b: b.locked),
    ("Total", lambda b: b.total),
    ("USD Value", lambda b: b.usd_value),
    ("Timestamp (UTC)", lambda b: b.timestamp),
]

FUTURES_BALANCE_COLUMNS: list[Column] = [
    ("Exchange", lambda b: b.exchange),
    ("Asset", lambda b: b.asset),
    ("Balance", lambda b: b.balance),
    ("Available", lambda b: b.available_balance),
    ("Unrealized PnL", lambda b: b.cross_unrealized_pnl),
    ("Max Withdraw", lambda b: b.max_withdraw_amount),
    ("Timestamp (UTC)", lambda b: b.timestamp),
]

SPOT_TRADE_COLUMNS: list[Column] = [
    ("Exchange", lambda t: t.exchange),
    ("Time (UTC)", lambda t: t.trade_datetime),
    ("Symbol", lambda t: t.symbol),
    ("Order ID", lambda t: t.order_id),
    ("Side", lambda t: t.side),
    ("Type", lambda t: t.order_type),
    ("Quantity", lambda t: t.quantity),
    ("Price", lambda t: t.price),
    ("Executed", lambda t: t.executed_quantity),
    ("Quote Amount", lambda t: t.cumulative_quote_quantity),
    ("Fee", lambda t: t.fee),
    ("Fee Asset", lambda t: t.fee_asset),
    ("Status", lambda t: t.status),
]

FUTURES_TRADE_COLUMNS: list[Column] = [
    ("Exchange", lambda t: t.exchange),
    ("Source", lambda t: t.source),
    ("Time (UTC)", lambda t: t.trade_datetime),
    ("Symbol", lambda t: t.symbol),
    ("Order ID", lambda t: t.order_id),
    ("Trade ID", lambda t: t.trade_id),
    ("Side", lambda t: t.side),
    ("Position Side", lambda t: t.position_side),
    ("Type", lambda t: t.order_type),
    ("Quantity", lambda t: t.quantity),
    ("Price", lambda t: t.price),
    ("Avg Price", lambda t: t.avg_price),
    ("Executed", lambda t: t.executed_quantity),
    ("Quote Amount", lambda t: t.cumulative_quote_quantity),
    ("Realized PnL", lambda t: t.realized_pnl),
    ("Fee", lambda t: t.fee),
    ("Fee Asset", lambda t: t.fee_asset),
    ("Leverage", lambda t: t.leverage),
    ("Status", lambda t: t.status),
]

POSITION_COLUMNS: list[Column] = [
    ("Exchange", lambda p: p.exchange),
    ("Symbol", lambda p: p.symbol),
    ("Side", lambda p: p.position_side),
    ("Size", lambda p: p.position_size),
    ("Entry Price", lambda p: p.entry_price),
    ("Mark Price", lambda p: p.mark_price),
    ("Unrealized PnL", lambda p: p.unrealized_pnl),
    ("Realized PnL", lambda p: p.cumulative_realized_pnl),
    ("Leverage", lambda p: p.leverage),
    ("Margin", lambda p: p.isolated_margin),
    ("Isolated", lambda p: p.isolated),
    ("Last Update (UTC)", lambda p: p.last_update),
]


class ExcelReportWriter:
    """Write one sheet per non-empty collection to ``<prefix><timestamp>.xlsx``."""

    def __init__(
        self,
        config: ReportConfig,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        log: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._log = log or logger

    def output_path(self) -> Path:
        stamp = self._clock().strftime(self._config.date_format)
        return Path(self._config.output_directory) / f"{self._config.file_name_prefix}{stamp}.xlsx"

    def write(self, data: PortfolioData) -> Path:
        path = self.output_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        wb = openpyxl.Workbook()
        wb.remove(wb.active)

        sheets = (
            ("Spot Balances", SPOT_BALANCE_COLUMNS, data.spot_balances),
            ("Futures Balances", FUTURES_BALANCE_COLUMNS, data.futures_balances),
            ("Spot Trading History", SPOT_TRADE_COLUMNS, data.spot_trades),
            ("Futures Trading History", FUTURES_TRADE_COLUMNS, data.futures_trades),
            ("Current Positions", POSITION_COLUMNS, data.positions),
        )
        for title, columns, records in sheets:
            if records:
                self._write_sheet(wb, title, columns, records)

        # A workbook needs at least one sheet.
        if not wb.sheetnames:
            ws = wb.create_sheet("Summary")
            for row, line in enumerate(data.summary_lines(), start=1):
                ws.cell(row=row, column=1, value=line)

        wb.save(path)
        self._log.info("Report saved: %s", path)
        return path

    @staticmethod
    def _write_sheet(
        wb: openpyxl.Workbook, title: str, columns: list[Column], records: Sequence[Any]
    ) -> None:
        ws = wb.create_sheet(title)
        for c, (header, _) in enumerate(columns, start=1):
            ws.cell(row=1, column=c, value=header).font = HEADER_FONT
        ws.freeze_panes = "A2"

        for r, record in enumerate(records, start=2):
            for c, (_, getter) in enumerate(columns, start=1):
                ws.cell(row=r, column=c, value=_cell_value(getter(record)))

        for c, (header, _) in enumerate(columns, start=1):
            letter = ws.cell(row=1, column=c).column_letter
            ws.column_dimensions[letter].width = min(max(len(header) + 4, 12), 40)
