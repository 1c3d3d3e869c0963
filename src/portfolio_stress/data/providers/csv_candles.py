# src/portfolio_stress/data/providers/csv_candles.py
from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import polars as pl

from portfolio_stress.data.providers.base import HistoricalCandleProvider
from portfolio_stress.data.schemas.broker import DailyClose
from portfolio_stress.errors import ProviderError

REQUIRED_COLUMNS = {"instrument_id", "date", "close"}


class CsvCandleProvider(HistoricalCandleProvider):
    """
    Daily closes from a long-format CSV: instrument_id, date, close.

    The file is read once on first use and indexed per instrument.
    """

    name = "csv-candles"

    def __init__(self, source: str | Path):
        self.source = Path(source)
        self._frames: Dict[str, pl.DataFrame] | None = None
        self._load_lock = asyncio.Lock()

    def _load(self) -> Dict[str, pl.DataFrame]:
        if not self.source.exists():
            raise ProviderError(self.name, f"candles file does not exist: {self.source}")

        df = pl.read_csv(self.source, try_parse_dates=True)
        missing = REQUIRED_COLUMNS - set(df.columns)
        if missing:
            raise ProviderError(
                self.name, f"CSV missing required columns: {sorted(missing)}"
            )

        if df.schema["date"] == pl.Utf8:
            df = df.with_columns(pl.col("date").str.to_date())
        elif df.schema["date"] == pl.Datetime:
            df = df.with_columns(pl.col("date").dt.date())

        df = df.with_columns(pl.col("instrument_id").cast(pl.Utf8))
        records = [DailyClose(**r) for r in df.select(sorted(REQUIRED_COLUMNS)).to_dicts()]
        bad = [r for r in records if r.close <= 0]
        if bad:
            first = bad[0]
            raise ProviderError(
                self.name,
                f"{first.instrument_id} on {first.trade_date} has non-positive close",
            )

        df = df.sort(["instrument_id", "date"])
        return {
            key: df.filter(pl.col("instrument_id") == key)
            for key in df["instrument_id"].unique().to_list()
        }

    async def daily_closes(
        self, instrument_id: str, start: datetime, end: datetime
    ) -> List[float]:
        if self._frames is None:
            async with self._load_lock:
                if self._frames is None:
                    # polars parse runs off the event loop
                    self._frames = await asyncio.to_thread(self._load)

        frame = self._frames.get(instrument_id)
        if frame is None:
            return []

        window = frame.filter(pl.col("date").is_between(start.date(), end.date()))
        return window["close"].cast(pl.Float64).to_list()
