from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from portfolio_stress.data.providers.base import (
    HistoricalCandleProvider,
    QuoteReferenceProvider,
)
from portfolio_stress.data.providers.csv_candles import CsvCandleProvider
from portfolio_stress.data.providers.static import StaticQuoteProvider
from portfolio_stress.history.builder import HistoricalPnlBuilder
from portfolio_stress.portfolio.normalizer import PortfolioNormalizer
from portfolio_stress.runner.config.loader import load_config
from portfolio_stress.runner.config.models import StressLabConfig
from portfolio_stress.runner.session import LoadSucceeded, StressLabSession

LOGGER = logging.getLogger(__name__)


# ======================================================================
# Provider wiring
# ======================================================================


def _quote_provider(cfg: StressLabConfig) -> QuoteReferenceProvider:
    if cfg.data.snapshot_path is None:
        raise ValueError(
            "Config must provide `data.snapshot_path`; live broker access is "
            "supplied by a QuoteReferenceProvider implementation."
        )
    return StaticQuoteProvider.from_file(cfg.data.snapshot_path)


def _candle_provider(cfg: StressLabConfig) -> Optional[HistoricalCandleProvider]:
    if cfg.data.candles_path is None:
        return None
    return CsvCandleProvider(cfg.data.candles_path)


class _NoCandles(HistoricalCandleProvider):
    async def daily_closes(self, instrument_id, start, end):
        return []


def build_session(
    cfg: StressLabConfig,
    quotes: Optional[QuoteReferenceProvider] = None,
    candles: Optional[HistoricalCandleProvider] = None,
) -> StressLabSession:
    """Wire providers, loaders and controller from a config."""
    quotes = quotes or _quote_provider(cfg)
    candles = candles or _candle_provider(cfg) or _NoCandles()

    return StressLabSession(
        normalizer=PortfolioNormalizer(quotes, cfg.stress_lab.normalizer_settings()),
        history_builder=HistoricalPnlBuilder(candles),
        settings=cfg.stress_lab,
        load_settings=cfg.loads,
        shocks=cfg.shocks,
        account_id=cfg.broker.account_id,
    )


# ======================================================================
# Main entrypoint
# ======================================================================


async def run_session(
    cfg: StressLabConfig,
    with_history: bool = True,
    shock_overrides: Optional[Dict[str, Any]] = None,
) -> StressLabSession:
    session = build_session(cfg)

    outcome = await session.load_portfolio()
    if not isinstance(outcome, LoadSucceeded):
        raise RuntimeError(outcome.message)

    if with_history and cfg.data.candles_path is not None:
        outcome = await session.load_history()
        if not isinstance(outcome, LoadSucceeded):
            LOGGER.warning("Continuing without history: %s", outcome.message)

    if shock_overrides:
        session.update_shocks(**shock_overrides)
    return session


def run_from_config(
    path: str | Path,
    with_history: bool = True,
    shock_overrides: Optional[Dict[str, Any]] = None,
) -> StressLabSession:
    LOGGER.info("Loading config: %s", path)
    cfg = load_config(path)
    return asyncio.run(run_session(cfg, with_history, shock_overrides))
