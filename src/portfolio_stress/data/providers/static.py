# src/portfolio_stress/data/providers/static.py
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from portfolio_stress.data.providers.base import QuoteReferenceProvider
from portfolio_stress.data.schemas.broker import (
    BrokerPositions,
    OptionContract,
    ReferenceRecord,
)
from portfolio_stress.errors import ProviderError


class PortfolioSnapshotFile(BaseModel):
    """On-disk snapshot of everything the quote/reference provider serves."""

    model_config = ConfigDict(extra="forbid")

    accounts: List[str] = Field(default_factory=list)
    positions: Dict[str, BrokerPositions] = Field(
        default_factory=dict, description="Broker positions keyed by account id."
    )
    instruments: List[ReferenceRecord] = Field(default_factory=list)
    options: List[OptionContract] = Field(default_factory=list)
    last_prices: Dict[str, float] = Field(default_factory=dict)


class StaticQuoteProvider(QuoteReferenceProvider):
    """
    Quote/reference provider backed by an in-memory snapshot.

    Used for offline runs and tests; a live broker client implements the same
    interface.
    """

    name = "snapshot"

    def __init__(self, snapshot: PortfolioSnapshotFile):
        self.snapshot = snapshot

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticQuoteProvider":
        path = Path(path)
        if not path.exists():
            raise ProviderError(cls.name, f"snapshot file does not exist: {path}")

        text = path.read_text()
        try:
            if path.suffix.lower() in {".yaml", ".yml"}:
                raw: Any = yaml.safe_load(text)
            elif path.suffix.lower() == ".json":
                raw = json.loads(text)
            else:
                raise ValueError("snapshot path must be YAML or JSON.")
        except Exception as e:
            raise ProviderError(cls.name, f"failed to parse snapshot: {e}") from e

        try:
            return cls(PortfolioSnapshotFile.model_validate(raw or {}))
        except ValidationError as e:
            raise ProviderError(cls.name, f"invalid snapshot: {e}") from e

    async def account_ids(self) -> List[str]:
        await asyncio.sleep(0)
        return list(self.snapshot.accounts or self.snapshot.positions.keys())

    async def positions(self, account_id: str) -> BrokerPositions:
        await asyncio.sleep(0)
        try:
            return self.snapshot.positions[account_id]
        except KeyError:
            raise ProviderError(self.name, f"unknown account: {account_id}") from None

    async def reference_directory(self) -> List[ReferenceRecord]:
        await asyncio.sleep(0)
        return list(self.snapshot.instruments)

    async def option_directory(self) -> List[OptionContract]:
        await asyncio.sleep(0)
        return list(self.snapshot.options)

    async def last_prices(self, figis: Iterable[str]) -> Dict[str, float]:
        await asyncio.sleep(0)
        prices = self.snapshot.last_prices
        return {f: prices[f] for f in figis if f in prices}
