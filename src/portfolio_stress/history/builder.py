# src/portfolio_stress/history/builder.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict

from portfolio_stress.data.providers.base import HistoricalCandleProvider
from portfolio_stress.portfolio.schemas import Portfolio, Position

LOGGER = logging.getLogger(__name__)

MIN_HISTORY_POINTS = 20


class PortfolioPnlSeries(BaseModel):
    """
    Daily portfolio P&L, most recent last.

    An empty series is a valid outcome: `instruments_used == 0` means nothing
    qualified, a positive count with no values means the overlap was too short.
    """

    model_config = ConfigDict(frozen=True)

    pnl: Tuple[float, ...] = ()
    instruments_used: int = 0
    instruments_requested: int = 0
    window_days: int = 0
    built_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.pnl)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.pnl, dtype=float)


def select_instruments(portfolio: Portfolio, max_instruments: int) -> List[Position]:
    """
    Priced, non-flat positions ranked by descending |market value|.

    `sorted` is stable, so equal exposures keep portfolio order.
    """
    candidates = [
        p for p in portfolio.positions if p.last_price > 0 and p.quantity != 0
    ]
    candidates = sorted(candidates, key=lambda p: abs(p.market_value), reverse=True)
    return candidates[: max(max_instruments, 0)]


def aggregate_pnl(
    closes: Mapping[str, Sequence[float]],
    quantities: Mapping[str, float],
) -> np.ndarray:
    """
    Sum of daily close-to-close P&L at current quantities.

    Series are right-aligned on the most recent day and cut to the shortest
    length, so index t is the same calendar day for every instrument.

    Returns
    -------
    pnl:
        1D array of length min_len - 1 (empty when min_len < 2).
    """
    if not closes:
        return np.empty(0, dtype=float)

    min_len = min(len(s) for s in closes.values())
    if min_len < 2:
        return np.empty(0, dtype=float)

    pnl = np.zeros(min_len - 1, dtype=float)
    for instrument_id, series in closes.items():
        tail = np.asarray(series, dtype=float)[-min_len:]
        qty = float(quantities.get(instrument_id, 0.0))
        pnl += np.diff(tail) * qty
    return pnl


class HistoricalPnlBuilder:
    """
    Builds the portfolio P&L series used for historical VaR/ES.

    "If I had held today's book through the window": current quantities are
    applied to every historical day. Options never qualify (no last price).
    """

    def __init__(
        self,
        candles: HistoricalCandleProvider,
        min_points: int = MIN_HISTORY_POINTS,
    ):
        self.candles = candles
        self.min_points = min_points

    async def build(
        self,
        portfolio: Portfolio,
        window_days: int,
        max_instruments: int,
        now: Optional[datetime] = None,
    ) -> PortfolioPnlSeries:
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(days=window_days)

        selected = select_instruments(portfolio, max_instruments)
        LOGGER.info(
            "Loading %d-day history for %d instruments", window_days, len(selected)
        )

        closes: Dict[str, List[float]] = {}
        for p in selected:
            series = await self.candles.daily_closes(p.instrument_id, start, end)
            if len(series) < self.min_points:
                LOGGER.debug(
                    "Discarding %s: %d points < %d",
                    p.instrument_id,
                    len(series),
                    self.min_points,
                )
                continue
            closes[p.instrument_id] = list(series)

        pnl = aggregate_pnl(closes, portfolio.quantity_by_id())
        LOGGER.info(
            "History built: %d instruments used, %d P&L days", len(closes), pnl.size
        )

        return PortfolioPnlSeries(
            pnl=tuple(float(x) for x in pnl),
            instruments_used=len(closes),
            instruments_requested=len(selected),
            window_days=window_days,
            built_at=end,
        )


async def build_history(
    candles: HistoricalCandleProvider,
    portfolio: Portfolio,
    window_days: int,
    max_instruments: int,
    now: Optional[datetime] = None,
) -> PortfolioPnlSeries:
    """Convenience entry point: one-shot builder call."""
    return await HistoricalPnlBuilder(candles).build(
        portfolio, window_days, max_instruments, now=now
    )
