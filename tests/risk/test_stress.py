# tests/risk/test_stress.py
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from portfolio_stress.history.builder import PortfolioPnlSeries
from portfolio_stress.options.black_scholes import Greeks, bs_greeks, bs_price
from portfolio_stress.portfolio.schemas import (
    InstrumentKind,
    LinkedUnderlying,
    OptionTerms,
    Portfolio,
    Position,
    UnlinkedUnderlying,
)
from portfolio_stress.risk.schemas import StressScenarioInputs
from portfolio_stress.risk.stress import (
    VOL_FLOOR,
    StressCalculator,
    calculate,
    effective_vol,
    option_taylor_pnl,
    year_fraction,
)

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


def share(figi="BBG000SHARE1", qty=10.0, last=100.0, kind=InstrumentKind.SHARE):
    return Position(
        instrument_id=figi,
        figi=figi,
        ticker=figi[-4:],
        kind=kind,
        quantity=qty,
        last_price=last,
        market_value=qty * last,
    )


def option(
    uid="opt-1",
    qty=1.0,
    spot=100.0,
    strike=100.0,
    days=30,
    is_call=True,
    contract_size=1.0,
):
    link = (
        LinkedUnderlying(position_uid="und-1", figi="BBG000SHARE1", spot=spot)
        if spot > 0
        else UnlinkedUnderlying(position_uid="und-1", reason="no last price")
    )
    return Position(
        instrument_id=uid,
        position_uid=uid,
        ticker=uid.upper(),
        kind=InstrumentKind.OPTION,
        quantity=qty,
        option=OptionTerms(
            strike=strike,
            expiration_utc=NOW + timedelta(days=days),
            is_call=is_call,
            contract_size=contract_size,
            underlying=link,
        ),
    )


def book(*positions, vol=0.5, rate=0.1, div=0.0):
    return Portfolio(
        account_id="acc",
        positions=tuple(positions),
        default_option_vol=vol,
        default_risk_free_rate=rate,
        default_dividend_yield=div,
    )


class FixedGreeksPricer:
    """Returns preset Greeks and records the arguments it was called with."""

    def __init__(self, greeks, price=0.0):
        self._greeks = greeks
        self._price = price
        self.calls = []

    def greeks(self, option_type, spot, strike, rate, dividend_yield, vol, t):
        self.calls.append(
            dict(
                option_type=option_type,
                spot=spot,
                strike=strike,
                rate=rate,
                dividend_yield=dividend_yield,
                vol=vol,
                t=t,
            )
        )
        return self._greeks

    def price(self, option_type, spot, strike, rate, dividend_yield, vol, t):
        return self._price


class RecordingTailRisk:
    def __init__(self):
        self.series = []

    def value_at_risk(self, pnl, alpha):
        self.series.append(("var", np.array(pnl), alpha))
        return -1.0

    def expected_shortfall(self, pnl, alpha):
        self.series.append(("es", np.array(pnl), alpha))
        return -2.0


# ---------------------------------------------------------------------
# Linear instruments
# ---------------------------------------------------------------------


def test_linear_end_to_end():
    p = share(qty=10.0, last=100.0)
    inputs = StressScenarioInputs(index_shock=-0.10, correlation_crisis=0.0)

    result = calculate(book(p), inputs, now=NOW)

    assert result.rows[0].stress_pnl == pytest.approx(-100.00, abs=1e-12)
    assert result.total_market_value == 1000.0
    assert result.total_stress_pnl == pytest.approx(-100.0, abs=1e-12)


@pytest.mark.parametrize("index_shock", [-0.3, -0.12, 0.0, 0.07])
@pytest.mark.parametrize("crisis", [0.0, 0.35, 1.0])
@pytest.mark.parametrize(
    "kind",
    [InstrumentKind.SHARE, InstrumentKind.ETF, InstrumentKind.BOND, InstrumentKind.FUTURE],
)
def test_linear_identity(index_shock, crisis, kind):
    p = share(qty=-7.0, last=123.45, kind=kind)
    inputs = StressScenarioInputs(
        index_shock=index_shock,
        vol_shock=0.4,
        rate_shock=0.015,
        correlation_crisis=crisis,
    )

    row = calculate(book(p), inputs, now=NOW).rows[0]

    assert row.stress_pnl == p.market_value * index_shock * (1 + 0.25 * crisis)
    assert row.delta == row.vega == row.rho == 0.0
    assert row.instrument_type == kind.value


def test_short_position_gains_on_selloff():
    p = share(qty=-5.0, last=200.0)
    inputs = StressScenarioInputs(index_shock=-0.2)

    row = calculate(book(p), inputs, now=NOW).rows[0]

    assert row.stress_pnl == pytest.approx(200.0)


# ---------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------


def test_option_end_to_end_with_fixed_greeks():
    pricer = FixedGreeksPricer(Greeks(delta=0.5, gamma=0.0, vega=10.0, theta=0.0, rho=2.0))
    calc = StressCalculator(pricer=pricer)
    p = option(qty=1.0, spot=100.0, strike=100.0, contract_size=1.0)
    inputs = StressScenarioInputs(
        index_shock=0.05,
        rate_shock=0.01,
        vol_shock=0.1,
        correlation_crisis=0.4,
        default_vol=0.2 / 1.1,  # effective vol = 0.2
    )

    row = calc.calculate(book(p), inputs, now=NOW).rows[0]

    assert pricer.calls[0]["vol"] == pytest.approx(0.2)
    assert pricer.calls[0]["spot"] == pytest.approx(105.0)
    # raw 0.5*5.25 + 2*0.01 + 10*0.02 = 2.845; crisis multiplier 1.1
    assert row.stress_pnl == pytest.approx(3.1295, rel=1e-12)
    assert (row.delta, row.vega, row.rho) == (0.5, 10.0, 2.0)


def test_option_taylor_pnl_formula():
    g = Greeks(delta=0.5, gamma=0.0, vega=10.0, theta=0.0, rho=2.0)
    inputs = StressScenarioInputs(index_shock=0.05, rate_shock=0.01, vol_shock=0.1)

    pnl = option_taylor_pnl(g, stressed_spot=105.0, inputs=inputs, vol=0.2, scale=1.0)

    assert pnl == pytest.approx(2.845, rel=1e-12)


def test_option_uses_shocked_market_parameters():
    pricer = FixedGreeksPricer(Greeks(0.4, 0.0, 5.0, 0.0, 1.0))
    calc = StressCalculator(pricer=pricer)
    p = option(spot=80.0, strike=90.0, days=73)
    inputs = StressScenarioInputs(
        index_shock=-0.12,
        vol_shock=0.4,
        rate_shock=0.015,
        default_vol=0.5,
        default_rate=0.10,
        default_dividend_yield=0.03,
    )

    calc.calculate(book(p), inputs, now=NOW)
    call = pricer.calls[0]

    assert call["spot"] == pytest.approx(80.0 * 0.88)
    assert call["strike"] == 90.0
    assert call["rate"] == pytest.approx(0.115)
    assert call["dividend_yield"] == 0.03
    assert call["vol"] == pytest.approx(0.7)
    assert call["t"] == pytest.approx(0.2)
    assert call["option_type"] == "call"


def test_option_market_value_is_theoretical_mark():
    p = option(qty=-3.0, spot=100.0, strike=105.0, days=90, is_call=False, contract_size=10.0)
    inputs = StressScenarioInputs(
        index_shock=-0.1, vol_shock=0.2, rate_shock=0.01, default_vol=0.3, default_rate=0.05
    )

    result = calculate(book(p), inputs, now=NOW)
    row = result.rows[0]

    t = 90 / 365.0
    vol = 0.3 * 1.2
    theo = bs_price("put", 90.0, 105.0, 0.06, 0.0, vol, t) * -30.0
    g = bs_greeks("put", 90.0, 105.0, 0.06, 0.0, vol, t)
    expected_pnl = -30.0 * (g.delta * 90.0 * -0.1 + g.rho * 0.01 + g.vega * 0.2 * vol)

    assert row.market_value == pytest.approx(theo)
    assert result.total_market_value == pytest.approx(theo)
    assert row.stress_pnl == pytest.approx(expected_pnl)
    assert not row.insufficient_metadata


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(spot=0.0),
        dict(strike=0.0),
        dict(days=-1),
        dict(days=0),
    ],
)
def test_option_with_insufficient_metadata_contributes_nothing(kwargs):
    p = option(**kwargs)
    inputs = StressScenarioInputs(
        index_shock=-0.3, vol_shock=1.0, rate_shock=0.05, correlation_crisis=1.0, default_vol=0.5
    )

    result = calculate(book(p), inputs, now=NOW)
    row = result.rows[0]

    assert row.stress_pnl == 0.0
    assert (row.delta, row.vega, row.rho) == (0.0, 0.0, 0.0)
    assert row.insufficient_metadata
    assert result.total_market_value == 0.0
    assert result.total_stress_pnl == 0.0


def test_vol_floor_reaches_pricer():
    pricer = FixedGreeksPricer(Greeks(0.5, 0.0, 1.0, 0.0, 1.0))
    calc = StressCalculator(pricer=pricer)
    inputs = StressScenarioInputs(default_vol=0.0, vol_shock=0.0)

    calc.calculate(book(option()), inputs, now=NOW)

    assert effective_vol(inputs) == VOL_FLOOR
    assert pricer.calls[0]["vol"] == 0.0001


def test_vol_floor_applies_to_large_negative_shock():
    inputs = StressScenarioInputs(default_vol=0.5, vol_shock=-1.5)
    assert effective_vol(inputs) == VOL_FLOOR


def test_year_fraction_handles_naive_and_missing_expiry():
    assert year_fraction(None, NOW) == 0.0
    assert year_fraction(NOW - timedelta(days=1), NOW) == 0.0
    naive = (NOW + timedelta(days=365)).replace(tzinfo=None)
    assert year_fraction(naive, NOW) == pytest.approx(1.0)


# ---------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------


def test_rows_preserve_input_order_and_totals():
    a = share("BBG000AAAA01", qty=1.0, last=50.0)
    b = option("opt-b", spot=0.0)
    c = share("BBG000CCCC01", qty=100.0, last=10.0)
    inputs = StressScenarioInputs(index_shock=-0.05, correlation_crisis=0.5)

    result = calculate(book(a, b, c), inputs, now=NOW)

    assert [r.instrument_id for r in result.rows] == [
        "BBG000AAAA01",
        "opt-b",
        "BBG000CCCC01",
    ]
    assert result.total_market_value == pytest.approx(1050.0)
    assert result.total_stress_pnl == pytest.approx(sum(r.stress_pnl for r in result.rows))
    assert result.total_stress_pnl == pytest.approx(1050.0 * -0.05 * 1.125)


def test_empty_portfolio():
    result = calculate(book(), StressScenarioInputs(index_shock=-0.1), now=NOW)

    assert result.rows == ()
    assert result.total_market_value == 0.0
    assert result.total_stress_pnl == 0.0


def test_calculation_is_deterministic():
    portfolio = book(share(), option(), share("BBG000OTHER1", qty=-3.0, last=42.0))
    inputs = StressScenarioInputs(
        index_shock=-0.12, vol_shock=0.4, rate_shock=0.015, correlation_crisis=0.35, default_vol=0.5
    )

    assert calculate(portfolio, inputs, now=NOW) == calculate(portfolio, inputs, now=NOW)


# ---------------------------------------------------------------------
# Tail risk
# ---------------------------------------------------------------------


def _history(values):
    return PortfolioPnlSeries(pnl=tuple(values), instruments_used=1)


@pytest.mark.parametrize("history", [None, _history([]), _history(range(19))])
def test_var_es_absent_without_enough_history(history):
    result = calculate(book(share()), StressScenarioInputs(), history, now=NOW)

    assert result.var99 is None
    assert result.es99 is None
    assert not result.has_tail_risk


def test_var_es_present_with_twenty_points():
    rng = np.random.default_rng(1)
    history = _history(rng.normal(0.0, 100.0, size=20))

    result = calculate(book(share()), StressScenarioInputs(), history, now=NOW)

    assert result.var99 is not None and result.es99 is not None
    assert result.es99 <= result.var99


def test_history_scaled_once_before_estimator():
    tail = RecordingTailRisk()
    calc = StressCalculator(tail_risk=tail)
    values = np.linspace(-50.0, 30.0, 25)
    inputs = StressScenarioInputs(correlation_crisis=0.5)

    result = calc.calculate(book(share()), inputs, _history(values), now=NOW)

    assert [name for name, _, _ in tail.series] == ["var", "es"]
    for _, series, alpha in tail.series:
        assert alpha == 0.99
        np.testing.assert_array_equal(series, values * (1 + 0.8 * 0.5))
    assert (result.var99, result.es99) == (-1.0, -2.0)


def test_tail_scaling_uses_larger_multiplier_than_positions():
    inputs = StressScenarioInputs(correlation_crisis=1.0)

    assert inputs.crisis_multiplier == 1.25
    assert inputs.tail_multiplier == 1.8
