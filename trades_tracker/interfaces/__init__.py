"""Protocol interfaces for the portfolio tracker."""
from .exchange_client import ExchangeClient
from .processor import ExchangeProcessor
from .report_writer import ReportWriter

__all__ = ["ExchangeClient", "ExchangeProcessor", "ReportWriter"]
