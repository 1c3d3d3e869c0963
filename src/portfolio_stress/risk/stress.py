# src/portfolio_stress/risk/stress.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple

import numpy as np

from portfolio_stress.history.builder import PortfolioPnlSeries
from portfolio_stress.options.black_scholes import BlackScholesPricer, Greeks
from portfolio_stress.portfolio.schemas import Portfolio, Position
from portfolio_stress.risk.cvar import HistoricalTailRisk
from portfolio_stress.risk.schemas import (
    PositionRiskResult,
    StressResult,
    StressScenarioInputs,
)

VOL_FLOOR = 0.0001
TAIL_CONFIDENCE = 0.99
MIN_TAIL_POINTS = 20
DAYS_PER_YEAR = 365.0


# =====================================================================
# Collaborator protocols
# =====================================================================


class OptionPricer(Protocol):
    def price(self, option_type, spot, strike, rate, dividend_yield, vol, t) -> float:
        ...

    def greeks(self, option_type, spot, strike, rate, dividend_yield, vol, t) -> Greeks:
        ...


class TailRiskEstimator(Protocol):
    def value_at_risk(self, pnl: np.ndarray, alpha: float) -> float:
        ...

    def expected_shortfall(self, pnl: np.ndarray, alpha: float) -> float:
        ...


# =====================================================================
# Helpers
# =====================================================================


def effective_vol(inputs: StressScenarioInputs) -> float:
    """Shocked vol with a hard floor so the pricer never sees zero."""
    return max(inputs.default_vol * (1.0 + inputs.vol_shock), VOL_FLOOR)


def year_fraction(expiration: Optional[datetime], now: datetime) -> float:
    """Time to expiry in 365-day years; 0 when missing or already expired."""
    if expiration is None:
        return 0.0
    if expiration.tzinfo is None:
        expiration = expiration.replace(tzinfo=timezone.utc)
    if expiration <= now:
        return 0.0
    return (expiration - now).total_seconds() / 86400.0 / DAYS_PER_YEAR


def linear_stress_pnl(market_value: float, index_shock: float) -> float:
    """Shares, ETFs, bonds and futures move one-for-one with the index."""
    return market_value * index_shock


def option_taylor_pnl(
    greeks: Greeks,
    stressed_spot: float,
    inputs: StressScenarioInputs,
    vol: float,
    scale: float,
) -> float:
    """
    First-order P&L: scale * (delta*dS + rho*dr + vega*dSig).

    dS is taken on the already-shocked spot and dSig = vol_shock * vol; both
    are kept exactly as the desk model defines them.
    """
    dS = stressed_spot * inputs.index_shock
    dr = inputs.rate_shock
    dSig = inputs.vol_shock * vol
    return scale * (greeks.delta * dS + greeks.rho * dr + greeks.vega * dSig)


# =====================================================================
# Engine
# =====================================================================


class StressCalculator:
    """
    Pure stress engine.

    Holds only its collaborators; every call works on the snapshot and inputs
    it is given and returns a fresh result.
    """

    def __init__(
        self,
        pricer: Optional[OptionPricer] = None,
        tail_risk: Optional[TailRiskEstimator] = None,
    ):
        self.pricer = pricer or BlackScholesPricer()
        self.tail_risk = tail_risk or HistoricalTailRisk()

    def _option_row(
        self,
        p: Position,
        inputs: StressScenarioInputs,
        vol: float,
        now: datetime,
    ) -> Tuple[PositionRiskResult, float, float]:
        spot = p.underlying_spot
        strike = p.strike
        t = year_fraction(p.expiration_utc, now)

        base = dict(
            instrument_id=p.instrument_id,
            ticker=p.ticker,
            name=p.name,
            instrument_type="option",
            quantity=p.quantity,
            last_price=p.last_price,
        )

        if not (spot > 0 and strike > 0 and t > 0):
            # Insufficient option metadata: no contribution
            row = PositionRiskResult(
                **base, market_value=p.market_value, insufficient_metadata=True
            )
            return row, 0.0, 0.0

        option_type = "call" if p.is_call else "put"
        stressed_spot = spot * (1.0 + inputs.index_shock)
        r = inputs.default_rate + inputs.rate_shock
        q = inputs.default_dividend_yield

        g = self.pricer.greeks(option_type, stressed_spot, strike, r, q, vol, t)
        scale = p.quantity * p.contract_size

        pnl = option_taylor_pnl(g, stressed_spot, inputs, vol, scale)
        theo = self.pricer.price(option_type, stressed_spot, strike, r, q, vol, t) * scale

        row = PositionRiskResult(
            **base,
            delta=g.delta,
            vega=g.vega,
            rho=g.rho,
            market_value=theo,
        )
        return row, pnl, theo

    def calculate(
        self,
        portfolio: Portfolio,
        inputs: StressScenarioInputs,
        history: Optional[PortfolioPnlSeries] = None,
        now: Optional[datetime] = None,
    ) -> StressResult:
        now = now or datetime.now(timezone.utc)
        vol = effective_vol(inputs)
        crisis_mul = inputs.crisis_multiplier

        total_value = 0.0
        total_pnl = 0.0
        rows: List[PositionRiskResult] = []

        for p in portfolio.positions:
            if p.is_option:
                row, pnl, value = self._option_row(p, inputs, vol, now)
            else:
                pnl = linear_stress_pnl(p.market_value, inputs.index_shock)
                value = p.market_value
                row = PositionRiskResult(
                    instrument_id=p.instrument_id,
                    ticker=p.ticker,
                    name=p.name,
                    instrument_type=p.kind.value,
                    quantity=p.quantity,
                    last_price=p.last_price,
                    market_value=p.market_value,
                )

            pnl *= crisis_mul
            total_value += value
            total_pnl += pnl
            rows.append(row.model_copy(update={"stress_pnl": pnl}))

        var99, es99 = self.tail_metrics(inputs, history)

        return StressResult(
            total_market_value=total_value,
            total_stress_pnl=total_pnl,
            var99=var99,
            es99=es99,
            rows=tuple(rows),
        )

    def tail_metrics(
        self,
        inputs: StressScenarioInputs,
        history: Optional[PortfolioPnlSeries],
    ) -> Tuple[Optional[float], Optional[float]]:
        """VaR99/ES99 of the crisis-scaled history, or (None, None)."""
        if history is None or len(history) < MIN_TAIL_POINTS:
            return None, None

        scaled = history.as_array() * inputs.tail_multiplier
        var99 = self.tail_risk.value_at_risk(scaled, TAIL_CONFIDENCE)
        es99 = self.tail_risk.expected_shortfall(scaled, TAIL_CONFIDENCE)
        return float(var99), float(es99)


def calculate(
    portfolio: Portfolio,
    inputs: StressScenarioInputs,
    history: Optional[PortfolioPnlSeries] = None,
    now: Optional[datetime] = None,
) -> StressResult:
    """Run the engine with the analytic pricer and historical estimator."""
    return StressCalculator().calculate(portfolio, inputs, history, now=now)
