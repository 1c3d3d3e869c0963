from __future__ import annotations

import asyncio
from pathlib import Path

import pandas as pd
import plotly.express as px
import streamlit as st

from portfolio_stress.runner.config.loader import load_config
from portfolio_stress.runner.controller import RecalculationView
from portfolio_stress.runner.run import build_session
from portfolio_stress.runner.session import LoadSucceeded, StressLabSession


# ============================================================
# Sidebar: config path
# ============================================================


def sidebar_config_path() -> Path | None:
    st.sidebar.header("⚙️ Stress Lab Configuration")
    raw = st.sidebar.text_input("Config file (YAML/JSON)", value="")
    if not raw:
        return None
    return Path(raw)


def _session(cfg_path: Path) -> StressLabSession:
    key = f"session::{cfg_path}"
    if key not in st.session_state:
        st.session_state[key] = build_session(load_config(cfg_path))
    return st.session_state[key]


# ============================================================
# Sliders
# ============================================================


def render_shock_sliders(session: StressLabSession) -> None:
    st.sidebar.header("🌪️ Scenario")
    shocks = session.shocks

    changes = {
        "index_shock_pct": st.sidebar.slider(
            "Index shock, %", -50.0, 50.0, float(shocks.index_shock_pct), 0.5
        ),
        "vol_shock_pct": st.sidebar.slider(
            "Vol shock, %", -90.0, 300.0, float(shocks.vol_shock_pct), 5.0
        ),
        "rate_shock_bps": st.sidebar.slider(
            "Rate shock, bps", -500.0, 1000.0, float(shocks.rate_shock_bps), 5.0
        ),
        "correlation_crisis": st.sidebar.slider(
            "Correlation crisis", 0.0, 1.0, float(shocks.correlation_crisis), 0.05
        ),
    }

    if changes != shocks.model_dump():
        session.update_shocks(**changes)


# ============================================================
# Results
# ============================================================


def render_view(view: RecalculationView, notes: str) -> None:
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total value", view.total_market_value_text.split(": ", 1)[1])
    c2.metric("Stress PnL", view.stress_pnl_text.split(": ", 1)[1])
    c3.metric("VaR(99%)", view.var_text.split(": ", 1)[1])
    c4.metric("ES(99%)", view.es_text.split(": ", 1)[1])
    if notes:
        st.caption(notes)

    df = pd.DataFrame([r.model_dump() for r in view.rows])
    if df.empty:
        st.info("Portfolio has no positions.")
        return

    st.subheader("📉 Largest Stress P&L")
    top = df.head(25)
    fig = px.bar(
        top,
        x="ticker",
        y="stress_pnl_num",
        color="instrument_type",
        title="Stress P&L by position",
    )
    st.plotly_chart(fig, use_container_width=True)

    st.subheader("📘 Positions")
    st.dataframe(
        df.drop(columns=["market_value_num", "stress_pnl_num"]),
        use_container_width=True,
    )


# ============================================================
# Main dashboard
# ============================================================


def main() -> None:
    st.set_page_config(page_title="Portfolio Stress Lab", layout="wide")
    st.title("🧪 Portfolio Stress Lab")

    cfg_path = sidebar_config_path()
    if cfg_path is None:
        st.info("Enter a config file path in the sidebar to begin.")
        return

    try:
        session = _session(cfg_path)
    except Exception as e:
        st.error(f"Config error: {e}")
        return

    col_a, col_b = st.columns(2)
    if col_a.button("Load Portfolio"):
        with st.spinner(session.status):
            asyncio.run(session.load_portfolio())
    if col_b.button("Load History (VaR/ES)", disabled=session.portfolio is None):
        with st.spinner("Loading candles history…"):
            outcome = asyncio.run(session.load_history())
        if not isinstance(outcome, LoadSucceeded):
            st.warning(outcome.message)

    st.caption(session.status)
    if session.history_stale:
        st.warning("History predates the current portfolio; reload it.")

    render_shock_sliders(session)

    if session.view is None:
        return
    render_view(session.view, session.notes)


if __name__ == "__main__":
    main()
