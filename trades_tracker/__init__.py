"""BingX / Bybit portfolio and trade history tracker."""

__version__ = "0.3.0"
