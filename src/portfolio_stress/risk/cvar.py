# src/portfolio_stress/risk/cvar.py
from __future__ import annotations

import numpy as np

from portfolio_stress.risk.var import _validate, value_at_risk


def expected_shortfall(
    pnl: np.ndarray,
    alpha: float,
) -> float:
    """
    Historical Expected Shortfall on a P&L series.

    Definition:
        q = quantile(pnl, 1 - alpha)
        ES = E[ pnl | pnl <= q ]

    Same sign convention as `value_at_risk`: losses are negative, and ES is
    always <= VaR. The interpolated quantile never falls below the smallest
    observation, so the tail holds at least one point.
    """
    x = _validate(pnl, alpha)

    q = np.quantile(x, 1.0 - alpha)
    tail = x[x <= q]
    return float(tail.mean())


class HistoricalTailRisk:
    """Tail-risk estimator collaborator used by the stress engine."""

    def value_at_risk(self, pnl: np.ndarray, alpha: float) -> float:
        return value_at_risk(pnl, alpha)

    def expected_shortfall(self, pnl: np.ndarray, alpha: float) -> float:
        return expected_shortfall(pnl, alpha)
