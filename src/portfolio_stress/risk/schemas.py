# src/portfolio_stress/risk/schemas.py
from __future__ import annotations

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class StressScenarioInputs(BaseModel):
    """
    One scenario, in decimal units.

    Frozen: every edit produces a new instance via `with_shocks`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    index_shock: float = Field(0.0, description="Equity index move, e.g. -0.12.")
    vol_shock: float = Field(0.0, description="Relative vol move, e.g. +0.40.")
    rate_shock: float = Field(0.0, description="Absolute rate move, e.g. +0.015.")
    correlation_crisis: float = Field(
        0.0, description="Qualitative crisis level, 0 (none) to 1 (full)."
    )

    default_vol: float = 0.0
    default_rate: float = 0.0
    default_dividend_yield: float = 0.0

    def with_shocks(self, **changes: float) -> "StressScenarioInputs":
        return self.model_copy(update=changes)

    @property
    def crisis_multiplier(self) -> float:
        """Position-level amplification."""
        return 1.0 + 0.25 * self.correlation_crisis

    @property
    def tail_multiplier(self) -> float:
        """Amplification of the historical P&L series before VaR/ES."""
        return 1.0 + 0.8 * self.correlation_crisis


class PositionRiskResult(BaseModel):
    """Per-position output row; Greeks are 0 when not computed."""

    model_config = ConfigDict(frozen=True)

    instrument_id: str
    ticker: str = ""
    name: str = ""
    instrument_type: str = ""
    quantity: float = 0.0
    last_price: float = 0.0

    delta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0

    stress_pnl: float = 0.0
    market_value: float = Field(0.0, description="Linear MV, or theoretical mark.")
    insufficient_metadata: bool = False


class StressResult(BaseModel):
    """
    Book-level result.

    var99/es99 are None when no usable history was supplied; they are never
    zero-filled.
    """

    model_config = ConfigDict(frozen=True)

    total_market_value: float = 0.0
    total_stress_pnl: float = 0.0
    var99: Optional[float] = None
    es99: Optional[float] = None
    rows: Tuple[PositionRiskResult, ...] = ()

    @property
    def has_tail_risk(self) -> bool:
        return self.var99 is not None and self.es99 is not None
