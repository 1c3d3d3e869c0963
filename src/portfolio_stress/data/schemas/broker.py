# src/portfolio_stress/data/schemas/broker.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from portfolio_stress.portfolio.schemas import InstrumentKind


class RawPosition(BaseModel):
    """Balance line as returned by the broker positions call."""

    model_config = ConfigDict(extra="ignore")

    figi: str = ""
    position_uid: str = ""
    balance: float = 0.0


class BrokerPositions(BaseModel):
    """Positions of one account, grouped the way the broker reports them."""

    model_config = ConfigDict(extra="ignore")

    securities: List[RawPosition] = Field(default_factory=list)
    futures: List[RawPosition] = Field(default_factory=list)
    options: List[RawPosition] = Field(default_factory=list)


class ReferenceRecord(BaseModel):
    """Directory entry for a share, ETF, bond or future."""

    model_config = ConfigDict(extra="ignore")

    figi: str
    ticker: str = ""
    name: str = ""
    kind: InstrumentKind = InstrumentKind.UNKNOWN
    currency: str = "RUB"
    position_uid: str = ""


class OptionContract(BaseModel):
    """Directory entry for an option, keyed by its position uid."""

    model_config = ConfigDict(extra="ignore")

    position_uid: str
    ticker: str = ""
    name: str = "Option"
    currency: str = "RUB"
    strike: Optional[float] = None
    expiration_utc: Optional[datetime] = None
    is_call: bool = True
    basic_asset_size: Optional[float] = None
    basic_asset_position_uid: str = ""


class DailyClose(BaseModel):
    """One daily candle close."""

    instrument_id: str = Field(..., min_length=1)
    trade_date: date = Field(..., alias="date", description="Trading date")
    close: float = Field(..., description="Closing price")

    model_config = {"populate_by_name": True}
