"""BingX exchange integration."""
from .client import BingXClient

__all__ = ["BingXClient"]
