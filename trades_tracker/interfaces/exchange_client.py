"""Exchange client protocol: authenticated REST abstraction."""
from typing import Protocol

from ..models import Balance, FuturesBalance, FuturesTrade, Position, Trade


class ExchangeClient(Protocol):
    """Abstract interface for one exchange account.

    Every fetch returns a list; failures are logged and yield ``[]``.
    """

    async def get_spot_balances(self) -> list[Balance]: ...

    async def get_futures_balances(self) -> list[FuturesBalance]: ...

    async def get_spot_trade_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = ...,
    ) -> list[Trade]: ...

    async def get_futures_trade_history(
        self,
        symbol: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = ...,
    ) -> list[FuturesTrade]: ...

    async def get_positions(self, symbol: str | None = None) -> list[Position]: ...

    async def close(self) -> None: ...

    async def __aenter__(self) -> "ExchangeClient": ...

    async def __aexit__(self, exc_type, exc, tb) -> None: ...
