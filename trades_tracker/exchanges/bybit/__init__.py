"""Bybit exchange integration."""
from .client import BybitClient
from .clock import ClockSkewCompensator

__all__ = ["BybitClient", "ClockSkewCompensator"]
