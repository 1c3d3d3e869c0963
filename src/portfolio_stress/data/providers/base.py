# src/portfolio_stress/data/providers/base.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List

from portfolio_stress.data.schemas.broker import (
    BrokerPositions,
    OptionContract,
    ReferenceRecord,
)


class QuoteReferenceProvider(ABC):
    """
    Async source of account positions, reference data and last prices.

    Implementations raise `ProviderError` on upstream failure; callers in the
    core never catch it.
    """

    @abstractmethod
    async def account_ids(self) -> List[str]:
        """Accounts visible to the current credentials, primary first."""

    @abstractmethod
    async def positions(self, account_id: str) -> BrokerPositions:
        """Current balances for an account."""

    @abstractmethod
    async def reference_directory(self) -> List[ReferenceRecord]:
        """Shares, ETFs, bonds and futures."""

    @abstractmethod
    async def option_directory(self) -> List[OptionContract]:
        """Option contract terms."""

    @abstractmethod
    async def last_prices(self, figis: Iterable[str]) -> Dict[str, float]:
        """Last traded price per figi; unknown figis are simply absent."""


class HistoricalCandleProvider(ABC):
    """Async source of daily close prices."""

    @abstractmethod
    async def daily_closes(
        self, instrument_id: str, start: datetime, end: datetime
    ) -> List[float]:
        """Closes over [start, end] UTC, oldest first."""
