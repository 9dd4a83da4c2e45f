"""Command-line interface for the portfolio tracker."""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys

from .config import AppConfig, load_config
from .interfaces import ReportWriter
from .logging_setup import configure_logging
from .reporting import ExcelReportWriter
from .services import PortfolioAggregator, PortfolioData, build_processors

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="trades-tracker",
        description="BingX / Bybit portfolio and trade history exporter",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    export_parser = sub.add_parser("export", help="Fetch all exchanges and write the workbook")
    summary_parser = sub.add_parser("summary", help="Fetch all exchanges and log a summary")

    for command_parser in (export_parser, summary_parser):
        command_parser.add_argument(
            "--concurrent",
            action="store_true",
            default=None,
            help="Process exchanges concurrently (overrides config)",
        )
        command_parser.add_argument(
            "--deadline",
            type=float,
            default=None,
            help="Overall deadline in seconds, 0 for none (overrides config)",
        )

    return parser


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    run = config.run
    if args.concurrent is not None:
        run = dataclasses.replace(run, concurrent=args.concurrent)
    if args.deadline is not None:
        run = dataclasses.replace(run, deadline_seconds=args.deadline)
    return dataclasses.replace(config, run=run)


async def collect(config: AppConfig) -> PortfolioData:
    """Run every configured exchange and return the merged snapshot."""
    aggregator = PortfolioAggregator(
        build_processors(config),
        concurrent=config.run.concurrent,
        deadline_seconds=config.run.deadline_seconds,
    )
    return await aggregator.process_all()


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = _apply_overrides(load_config(args.config), args)

    data = await collect(config)
    for line in data.summary_lines():
        logger.info(line)

    if not data.has_any_data:
        logger.warning("No data retrieved from any exchange. Check API credentials.")
        return

    if args.command == "export":
        writer: ReportWriter = ExcelReportWriter(config.report)
        writer.write(data)


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        logger.critical("Application failed: %s", e)
        sys.exit(1)
