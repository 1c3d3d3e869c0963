# examples/stress_demo.py
from datetime import datetime, timedelta, timezone

import numpy as np

from portfolio_stress.history.builder import PortfolioPnlSeries
from portfolio_stress.portfolio.schemas import (
    InstrumentKind,
    LinkedUnderlying,
    OptionTerms,
    Portfolio,
    Position,
)
from portfolio_stress.runner.controller import RecalculationController, ShockSettings

np.random.seed(7)

now = datetime.now(timezone.utc)

# -------------------------------
# Portfolio snapshot
# -------------------------------
positions = (
    Position(
        instrument_id="SBER",
        figi="SBER",
        ticker="SBER",
        name="Sberbank",
        kind=InstrumentKind.SHARE,
        quantity=1_000,
        last_price=290.0,
        market_value=290_000.0,
    ),
    Position(
        instrument_id="TMOS",
        figi="TMOS",
        ticker="TMOS",
        name="Index ETF",
        kind=InstrumentKind.ETF,
        quantity=20_000,
        last_price=6.5,
        market_value=130_000.0,
    ),
    Position(
        instrument_id="opt-sber-put",
        position_uid="opt-sber-put",
        ticker="SBER280P",
        name="SBER put 280",
        kind=InstrumentKind.OPTION,
        quantity=5,
        option=OptionTerms(
            strike=280.0,
            expiration_utc=now + timedelta(days=45),
            is_call=False,
            contract_size=100,
            underlying=LinkedUnderlying(position_uid="u-sber", figi="SBER", spot=290.0),
        ),
    ),
)
portfolio = Portfolio(account_id="demo", base_currency="RUB", positions=positions)

# -------------------------------
# Synthetic history (120 days)
# -------------------------------
daily_pnl = np.random.standard_t(df=4, size=120) * 4_000.0
history = PortfolioPnlSeries(
    pnl=tuple(daily_pnl), instruments_used=2, instruments_requested=2, window_days=180
)

# -------------------------------
# Scenario ladder
# -------------------------------
controller = RecalculationController()
base = ShockSettings()

print("\nStress ladder (crisis 0.35, vol +40%, rate +150bp)")
print("Index shock | Stress PnL       | VaR99        | ES99")
print("-" * 60)
for shock in (-5.0, -12.0, -20.0, -30.0):
    view = controller.recalculate(
        portfolio, base.with_changes(index_shock_pct=shock), history, now=now
    )
    r = view.result
    print(f"{shock:>10.1f}% | {r.total_stress_pnl:>15,.2f} | {r.var99:>12,.2f} | {r.es99:>12,.2f}")

print()
print(view.total_market_value_text)
for row in view.rows:
    print(f"  {row.ticker:<10} {row.instrument_type:<7} {row.stress_pnl:>14} {row.delta:>8}")
