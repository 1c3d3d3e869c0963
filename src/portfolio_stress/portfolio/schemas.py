# src/portfolio_stress/portfolio/schemas.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, NewType, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Distinct identifier spaces: exchange FIGIs for shares/ETFs/bonds/futures,
# broker position uids for options and for the option -> underlying link.
Figi = NewType("Figi", str)
PositionUid = NewType("PositionUid", str)


class InstrumentKind(str, Enum):
    """Instrument classes known to the normalizer."""

    SHARE = "share"
    ETF = "etf"
    BOND = "bond"
    FUTURE = "future"
    OPTION = "option"
    UNKNOWN = "unknown"


# ============================================================
# Option -> underlying link
# ============================================================


class LinkedUnderlying(BaseModel):
    """Every join step succeeded: uid -> figi -> last price."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["linked"] = "linked"
    position_uid: str
    figi: str
    spot: float = Field(..., gt=0.0)


class UnlinkedUnderlying(BaseModel):
    """
    The underlying could not be resolved.

    The option is kept; its spot reads as 0 so the engine treats it as
    insufficient metadata.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["unlinked"] = "unlinked"
    position_uid: str = ""
    figi: str = ""
    reason: str

    @property
    def spot(self) -> float:
        return 0.0


UnderlyingLink = Annotated[
    Union[LinkedUnderlying, UnlinkedUnderlying], Field(discriminator="status")
]


class OptionTerms(BaseModel):
    """Contract terms of an option position."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    strike: float = 0.0
    expiration_utc: Optional[datetime] = None
    is_call: bool = True
    contract_size: float = 1.0
    underlying: UnderlyingLink

    @field_validator("contract_size", mode="before")
    @classmethod
    def _default_contract_size(cls, v):
        # Missing or non-positive lot size means one unit per contract
        if v is None or v <= 0:
            return 1.0
        return v


# ============================================================
# Positions and portfolio
# ============================================================


class Position(BaseModel):
    """
    Normalized position record.

    Quantities are signed:
      > 0  → long
      < 0  → short
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    instrument_id: str = Field(..., description="FIGI, or position uid for options.")
    figi: str = ""
    position_uid: str = ""
    ticker: str = ""
    name: str = ""
    kind: InstrumentKind = InstrumentKind.UNKNOWN
    currency: str = "RUB"

    quantity: float = 0.0
    last_price: float = 0.0
    market_value: float = 0.0

    option: Optional[OptionTerms] = None

    @property
    def is_option(self) -> bool:
        return self.option is not None

    @property
    def underlying_spot(self) -> float:
        return self.option.underlying.spot if self.option is not None else 0.0

    @property
    def strike(self) -> float:
        return self.option.strike if self.option is not None else 0.0

    @property
    def expiration_utc(self) -> Optional[datetime]:
        return self.option.expiration_utc if self.option is not None else None

    @property
    def is_call(self) -> bool:
        return self.option.is_call if self.option is not None else False

    @property
    def contract_size(self) -> float:
        return self.option.contract_size if self.option is not None else 1.0


class Portfolio(BaseModel):
    """Immutable snapshot of an account, in broker order."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    account_id: str = ""
    base_currency: str = "RUB"
    positions: Tuple[Position, ...] = ()

    default_option_vol: float = 0.50
    default_risk_free_rate: float = 0.10
    default_dividend_yield: float = 0.0

    def __len__(self) -> int:
        return len(self.positions)

    def quantity_by_id(self) -> dict[str, float]:
        """Current held quantity keyed by instrument id (last entry wins)."""
        return {p.instrument_id: p.quantity for p in self.positions}
