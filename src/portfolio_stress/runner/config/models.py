from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from portfolio_stress.portfolio.normalizer import NormalizerSettings
from portfolio_stress.runner.controller import DISPLAY_ROW_LIMIT, ShockSettings


# ============================================================
# Stress lab defaults
# ============================================================


class StressLabSettings(BaseModel):
    """
    History window and portfolio-wide pricing assumptions.
    """

    model_config = ConfigDict(extra="forbid")

    history_days: int = Field(default=180, gt=0)
    max_history_instruments: int = Field(default=50, gt=0)

    default_option_vol: float = Field(default=0.50, ge=0.0)
    default_risk_free_rate: float = 0.10
    default_dividend_yield: float = 0.0
    base_currency: str = "RUB"

    display_row_limit: int = Field(default=DISPLAY_ROW_LIMIT, gt=0)

    def normalizer_settings(self) -> NormalizerSettings:
        return NormalizerSettings(
            default_option_vol=self.default_option_vol,
            default_risk_free_rate=self.default_risk_free_rate,
            default_dividend_yield=self.default_dividend_yield,
            base_currency=self.base_currency,
        )


# ============================================================
# Broker credentials
# ============================================================


class BrokerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token: Optional[str] = Field(
        default=None,
        description=(
            "API token for a live QuoteReferenceProvider implementation; "
            "the TINKOFF_TOKEN environment variable wins."
        ),
    )
    account_id: Optional[str] = Field(
        default=None, description="Account to load; the first one when unset."
    )
    use_sandbox: bool = Field(
        default=False,
        description="Reserved for a live QuoteReferenceProvider implementation.",
    )


# ============================================================
# Offline data sources
# ============================================================


class DataSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    snapshot_path: Optional[str] = Field(
        default=None, description="YAML/JSON portfolio snapshot for offline runs."
    )
    candles_path: Optional[str] = Field(
        default=None, description="CSV of daily closes: instrument_id,date,close."
    )


# ============================================================
# Load behaviour
# ============================================================


class LoadSettings(BaseModel):
    """Timeout, retry and overlap policy for the I/O-bound loaders."""

    model_config = ConfigDict(extra="forbid")

    timeout_seconds: Optional[float] = Field(default=120.0, gt=0.0)
    retries: int = Field(default=0, ge=0)
    concurrent_policy: Literal["reject", "wait"] = "reject"


# ============================================================
# Top-level config
# ============================================================


class StressLabConfig(BaseModel):
    """
    Global application configuration.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = "portfolio_stress"

    stress_lab: StressLabSettings = Field(default_factory=StressLabSettings)
    shocks: ShockSettings = Field(default_factory=ShockSettings)
    broker: BrokerSettings = Field(default_factory=BrokerSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    loads: LoadSettings = Field(default_factory=LoadSettings)
