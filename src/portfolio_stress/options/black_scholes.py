# src/portfolio_stress/options/black_scholes.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np
from scipy.stats import norm

OptionType = Literal["call", "put"]


# --------------------------
# Black-Scholes-Merton core
# --------------------------
def _d1_d2(S, K, T, r, q, sigma):
    """d1/d2 with a continuous dividend yield q."""
    sqrtT = np.sqrt(T)
    d1 = (np.log(S / K) + (r - q + 0.5 * sigma**2) * T) / (sigma * sqrtT)
    d2 = d1 - sigma * sqrtT
    return d1, d2


def _check_type(option_type: str) -> None:
    if option_type not in ("call", "put"):
        raise ValueError("option_type must be 'call' or 'put'")


def bs_price(
    option_type: OptionType,
    spot: float,
    strike: float,
    rate: float,
    dividend_yield: float,
    vol: float,
    t: float,
) -> float:
    """
    European option price under Black-Scholes-Merton.

    Argument order follows the stress engine's pricer contract:
    (type, spot, strike, rate, dividend yield, vol, time in years).
    """
    _check_type(option_type)
    d1, d2 = _d1_d2(spot, strike, t, rate, dividend_yield, vol)
    disc_q = np.exp(-dividend_yield * t)
    disc_r = np.exp(-rate * t)

    if option_type == "call":
        price = spot * disc_q * norm.cdf(d1) - strike * disc_r * norm.cdf(d2)
    else:
        price = strike * disc_r * norm.cdf(-d2) - spot * disc_q * norm.cdf(-d1)
    return float(price)


@dataclass(frozen=True)
class Greeks:
    """
    First-order sensitivities of a single option.

    vega and rho are per unit change (1.0 = 100 vol points / 100% rate),
    theta is per year.
    """

    delta: float
    gamma: float
    vega: float
    theta: float
    rho: float


def bs_greeks(
    option_type: OptionType,
    spot: float,
    strike: float,
    rate: float,
    dividend_yield: float,
    vol: float,
    t: float,
) -> Greeks:
    """Analytic Greeks, evaluated with the same arguments as `bs_price`."""
    _check_type(option_type)
    S, K, T, r, q, sigma = spot, strike, t, rate, dividend_yield, vol

    d1, d2 = _d1_d2(S, K, T, r, q, sigma)
    sqrtT = np.sqrt(T)
    pdf_d1 = norm.pdf(d1)
    disc_q = np.exp(-q * T)
    disc_r = np.exp(-r * T)

    gamma = disc_q * pdf_d1 / (S * sigma * sqrtT)
    vega = S * disc_q * pdf_d1 * sqrtT
    decay = -S * disc_q * pdf_d1 * sigma / (2 * sqrtT)

    if option_type == "call":
        delta = disc_q * norm.cdf(d1)
        theta = decay - r * K * disc_r * norm.cdf(d2) + q * S * disc_q * norm.cdf(d1)
        rho = K * T * disc_r * norm.cdf(d2)
    else:
        delta = disc_q * (norm.cdf(d1) - 1.0)
        theta = (
            decay + r * K * disc_r * norm.cdf(-d2) - q * S * disc_q * norm.cdf(-d1)
        )
        rho = -K * T * disc_r * norm.cdf(-d2)

    return Greeks(
        delta=float(delta),
        gamma=float(gamma),
        vega=float(vega),
        theta=float(theta),
        rho=float(rho),
    )


class BlackScholesPricer:
    """
    Analytic pricer collaborator for the stress engine.

    Thin object wrapper so tests can swap in a pricer with fixed Greeks.
    """

    def price(self, option_type, spot, strike, rate, dividend_yield, vol, t) -> float:
        return bs_price(option_type, spot, strike, rate, dividend_yield, vol, t)

    def greeks(self, option_type, spot, strike, rate, dividend_yield, vol, t) -> Greeks:
        return bs_greeks(option_type, spot, strike, rate, dividend_yield, vol, t)
