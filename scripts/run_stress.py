# scripts/run_stress.py
import asyncio

from portfolio_stress.runner.config.loader import load_config
from portfolio_stress.runner.run import run_session


async def main():
    cfg = load_config("configs/stress_lab.yaml")
    session = await run_session(cfg)

    view = session.view
    print(view.total_market_value_text)
    print(view.stress_pnl_text)
    print(view.var_text)
    print(view.es_text)
    print(session.notes)


asyncio.run(main())
