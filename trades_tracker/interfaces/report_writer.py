"""Report writer protocol: output sink for the aggregate."""
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..services.portfolio import PortfolioData


class ReportWriter(Protocol):
    """Abstract interface for persisting a portfolio snapshot."""

    def write(self, data: "PortfolioData") -> Path: ...
