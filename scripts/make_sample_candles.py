# scripts/make_sample_candles.py
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import polars as pl

OUT = Path("data/raw/candles.csv")
N_DAYS = 200
SPOTS = {"SBER": 290.0, "GAZP": 160.0, "TMOS": 6.5}

rng = np.random.default_rng(42)
end = date.today()
days = [end - timedelta(days=i) for i in range(N_DAYS)][::-1]

frames = []
for instrument_id, spot in SPOTS.items():
    log_returns = rng.normal(0.0, 0.02, N_DAYS)
    closes = spot * np.exp(np.cumsum(log_returns) - log_returns.sum())
    frames.append(
        pl.DataFrame(
            {"instrument_id": [instrument_id] * N_DAYS, "date": days, "close": closes}
        )
    )

OUT.parent.mkdir(parents=True, exist_ok=True)
pl.concat(frames).write_csv(OUT)
print(f"Wrote {N_DAYS * len(SPOTS)} rows to {OUT}")
