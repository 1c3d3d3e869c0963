# src/portfolio_stress/runner/controller.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from portfolio_stress.history.builder import PortfolioPnlSeries
from portfolio_stress.portfolio.schemas import Portfolio
from portfolio_stress.risk.schemas import (
    PositionRiskResult,
    StressResult,
    StressScenarioInputs,
)
from portfolio_stress.risk.stress import StressCalculator

DISPLAY_ROW_LIMIT = 500
MISSING = "—"


class ShockSettings(BaseModel):
    """
    Slider values in UI units.

    Percentages for index and vol, basis points for the rate, 0..1 for the
    crisis level.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    index_shock_pct: float = -12.0
    vol_shock_pct: float = 40.0
    rate_shock_bps: float = 150.0
    correlation_crisis: float = Field(0.35, ge=0.0, le=1.0)

    def with_changes(self, **changes: float) -> "ShockSettings":
        # model_copy skips validation; round-trip to re-check ranges
        return ShockSettings.model_validate({**self.model_dump(), **changes})

    def to_inputs(self, portfolio: Portfolio) -> StressScenarioInputs:
        base = StressScenarioInputs(
            default_vol=portfolio.default_option_vol,
            default_rate=portfolio.default_risk_free_rate,
            default_dividend_yield=portfolio.default_dividend_yield,
        )
        return base.with_shocks(
            index_shock=self.index_shock_pct / 100.0,
            vol_shock=self.vol_shock_pct / 100.0,
            rate_shock=self.rate_shock_bps / 10_000.0,
            correlation_crisis=self.correlation_crisis,
        )


class DisplayRow(BaseModel):
    """Grid row with the formatting the position table shows."""

    model_config = ConfigDict(frozen=True)

    ticker: str
    name: str
    instrument_type: str
    quantity: float
    last_price: str
    market_value: str
    stress_pnl: str
    delta: str
    vega: str
    rho: str

    market_value_num: float
    stress_pnl_num: float

    @classmethod
    def from_result(cls, row: PositionRiskResult) -> "DisplayRow":
        return cls(
            ticker=row.ticker,
            name=row.name,
            instrument_type=row.instrument_type,
            quantity=row.quantity,
            last_price=f"{row.last_price:.4f}" if row.last_price > 0 else MISSING,
            market_value=f"{row.market_value:.2f}" if row.market_value > 0 else MISSING,
            stress_pnl=f"{row.stress_pnl:.2f}",
            delta=f"{row.delta:.4f}" if row.delta != 0 else "",
            vega=f"{row.vega:.2f}" if row.vega != 0 else "",
            rho=f"{row.rho:.2f}" if row.rho != 0 else "",
            market_value_num=row.market_value,
            stress_pnl_num=row.stress_pnl,
        )


class RecalculationView(BaseModel):
    """Everything the screen needs after one recompute."""

    model_config = ConfigDict(frozen=True)

    inputs: StressScenarioInputs
    result: StressResult
    rows: Tuple[DisplayRow, ...]
    total_market_value_text: str
    stress_pnl_text: str
    var_text: str
    es_text: str


def top_rows(
    rows: Tuple[PositionRiskResult, ...], limit: int = DISPLAY_ROW_LIMIT
) -> List[PositionRiskResult]:
    """Largest |stress P&L| first; ties keep portfolio order."""
    ranked = sorted(rows, key=lambda r: abs(r.stress_pnl), reverse=True)
    return ranked[: max(limit, 0)]


def _tail_text(
    label: str, result: StressResult, value: Optional[float], ccy: str
) -> str:
    if not result.has_tail_risk or value is None:
        return f"{label}: {MISSING} (load history)"
    return f"{label}: {value:.2f} {ccy}"


class RecalculationController:
    """
    Turns slider values into one engine call and a display view.

    Stateless apart from its collaborators, so the same (portfolio, history,
    settings) always yields the same view.
    """

    def __init__(
        self,
        calculator: Optional[StressCalculator] = None,
        row_limit: int = DISPLAY_ROW_LIMIT,
    ):
        self.calculator = calculator or StressCalculator()
        self.row_limit = row_limit

    def recalculate(
        self,
        portfolio: Portfolio,
        settings: ShockSettings,
        history: Optional[PortfolioPnlSeries] = None,
        now: Optional[datetime] = None,
    ) -> RecalculationView:
        inputs = settings.to_inputs(portfolio)
        result = self.calculator.calculate(portfolio, inputs, history, now=now)
        ccy = portfolio.base_currency

        return RecalculationView(
            inputs=inputs,
            result=result,
            rows=tuple(
                DisplayRow.from_result(r)
                for r in top_rows(result.rows, self.row_limit)
            ),
            total_market_value_text=f"Total value: {result.total_market_value:.2f} {ccy}",
            stress_pnl_text=f"Stress PnL: {result.total_stress_pnl:.2f} {ccy}",
            var_text=_tail_text("VaR(99%)", result, result.var99, ccy),
            es_text=_tail_text("ES(99%)", result, result.es99, ccy),
        )
