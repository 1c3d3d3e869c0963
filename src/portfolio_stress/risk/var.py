# src/portfolio_stress/risk/var.py
from __future__ import annotations

import numpy as np


def _validate(pnl: np.ndarray, alpha: float) -> np.ndarray:
    x = np.asarray(pnl, dtype=float)
    if x.ndim != 1 or x.size == 0:
        msg = "pnl must be a non-empty 1D array."
        raise ValueError(msg)
    if not (0.0 < alpha < 1.0):
        msg = "alpha must be in (0, 1)."
        raise ValueError(msg)
    return x


def value_at_risk(
    pnl: np.ndarray,
    alpha: float,
) -> float:
    """
    Historical VaR on a P&L series at confidence level `alpha`.

    Parameters
    ----------
    pnl:
        1D array of portfolio P&L observations (currency units).
    alpha:
        Confidence level in (0, 1), e.g. 0.99 for 99% VaR.

    Returns
    -------
    var:
        The (1 - alpha) quantile of the P&L distribution, kept in P&L sign:

            var = quantile(pnl, 1 - alpha)

        so a loss shows up as a negative number and more negative means a
        larger loss.
    """
    x = _validate(pnl, alpha)
    return float(np.quantile(x, 1.0 - alpha))
