"""Exchange API clients."""
from .bingx import BingXClient
from .bybit import BybitClient

__all__ = ["BingXClient", "BybitClient"]
