# src/portfolio_stress/errors.py
from __future__ import annotations


class PortfolioStressError(Exception):
    """Base class for errors raised by this package."""


class ProviderError(PortfolioStressError):
    """An upstream quote, reference or candle provider call failed."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
