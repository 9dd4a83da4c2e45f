"""Service modules"""
from .history import ChunkedHistoryFetcher, TimeWindow, plan_windows
from .portfolio import PortfolioAggregator, PortfolioData, build_processors
from .processor import ExchangeProcessor, ExchangeResult, ProcessingStatus

__all__ = [
    "ChunkedHistoryFetcher",
    "ExchangeProcessor",
    "ExchangeResult",
    "PortfolioAggregator",
    "PortfolioData",
    "ProcessingStatus",
    "TimeWindow",
    "build_processors",
    "plan_windows",
]
