"""Exchange processor protocol: one exchange's full data run."""
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..services.processor import ExchangeResult


class ExchangeProcessor(Protocol):
    """Abstract interface for fetching everything one exchange holds."""

    @property
    def exchange_name(self) -> str: ...

    async def process_exchange_data(self) -> "ExchangeResult": ...
