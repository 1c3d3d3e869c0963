from __future__ import annotations

import argparse
import logging

from portfolio_stress.runner.controller import RecalculationView
from portfolio_stress.runner.run import run_from_config


def _print_view(view: RecalculationView, top: int, notes: str) -> None:
    print(view.total_market_value_text)
    print(view.stress_pnl_text)
    print(view.var_text)
    print(view.es_text)
    if notes:
        print(notes)
    print()

    header = f"{'Ticker':<12}{'Type':<8}{'Qty':>12}{'Last':>14}{'Value':>16}{'Stress PnL':>14}{'Delta':>10}"
    print(header)
    print("-" * len(header))
    for row in view.rows[:top]:
        print(
            f"{row.ticker:<12}{row.instrument_type:<8}{row.quantity:>12g}"
            f"{row.last_price:>14}{row.market_value:>16}{row.stress_pnl:>14}{row.delta:>10}"
        )


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="portfolio-stress", description="Portfolio stress and tail-risk CLI"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # -----------------------------
    # run
    # -----------------------------
    run_p = subparsers.add_parser("run", help="Load a portfolio and run one scenario")
    run_p.add_argument("--config", required=True, help="Path to YAML/JSON config")
    run_p.add_argument("--index-shock", type=float, help="Index shock in percent")
    run_p.add_argument("--vol-shock", type=float, help="Vol shock in percent")
    run_p.add_argument("--rate-shock-bps", type=float, help="Rate shock in bps")
    run_p.add_argument("--crisis", type=float, help="Correlation crisis, 0..1")
    run_p.add_argument(
        "--no-history", action="store_true", help="Skip history load (no VaR/ES)"
    )
    run_p.add_argument("--top", type=int, default=20, help="Rows to print")

    # -----------------------------
    # version
    # -----------------------------
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # =============================
    # COMMAND HANDLING
    # =============================

    if args.command == "run":
        overrides = {
            key: value
            for key, value in (
                ("index_shock_pct", args.index_shock),
                ("vol_shock_pct", args.vol_shock),
                ("rate_shock_bps", args.rate_shock_bps),
                ("correlation_crisis", args.crisis),
            )
            if value is not None
        }
        session = run_from_config(
            args.config, with_history=not args.no_history, shock_overrides=overrides
        )
        if session.view is not None:
            _print_view(session.view, args.top, session.notes)

    elif args.command == "version":
        from portfolio_stress import __version__

        print(f"portfolio_stress version {__version__}")


if __name__ == "__main__":
    main()
