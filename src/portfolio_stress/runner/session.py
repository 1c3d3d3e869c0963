# src/portfolio_stress/runner/session.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional, Tuple, TypeVar, Union

from portfolio_stress.history.builder import HistoricalPnlBuilder, PortfolioPnlSeries
from portfolio_stress.portfolio.normalizer import PortfolioNormalizer
from portfolio_stress.portfolio.schemas import Portfolio
from portfolio_stress.runner.config.models import LoadSettings, StressLabSettings
from portfolio_stress.runner.controller import (
    RecalculationController,
    RecalculationView,
    ShockSettings,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
LoadKind = Literal["portfolio", "history"]


# =====================================================================
# Load outcomes
# =====================================================================


@dataclass(frozen=True)
class LoadSucceeded:
    kind: LoadKind
    message: str


@dataclass(frozen=True)
class LoadFailed:
    kind: LoadKind
    message: str
    error: BaseException


@dataclass(frozen=True)
class LoadRejected:
    kind: LoadKind
    message: str


LoadOutcome = Union[LoadSucceeded, LoadFailed, LoadRejected]
LoadPlan = Tuple[Callable[[], Awaitable[Any]], Callable[[Any], str]]


def describe_failure(kind: LoadKind, exc: BaseException) -> str:
    """User-facing text for a failed load."""
    prefix = "Error" if kind == "portfolio" else "History load error"
    if isinstance(exc, asyncio.TimeoutError):
        return f"{prefix}: timed out"
    return f"{prefix}: {exc}"


async def call_with_retries(
    factory: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: Optional[float],
    retries: int,
) -> T:
    """
    Await `factory()` with a per-attempt timeout, retrying up to `retries`
    extra times. The last error is re-raised.
    """
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(factory(), timeout=timeout_seconds)
        except Exception as exc:
            if attempt >= retries:
                raise
            attempt += 1
            LOGGER.warning("Load attempt %d failed (%s); retrying", attempt, exc)


# =====================================================================
# Session
# =====================================================================


class StressLabSession:
    """
    Orchestrates loads and recomputes for one screen.

    Loads are serialized: while one is outstanding a second is rejected (or
    waits, depending on `LoadSettings.concurrent_policy`). A failed load
    leaves the previous portfolio and history untouched.
    """

    def __init__(
        self,
        normalizer: PortfolioNormalizer,
        history_builder: HistoricalPnlBuilder,
        controller: Optional[RecalculationController] = None,
        settings: Optional[StressLabSettings] = None,
        load_settings: Optional[LoadSettings] = None,
        shocks: Optional[ShockSettings] = None,
        account_id: Optional[str] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self.normalizer = normalizer
        self.history_builder = history_builder
        self.settings = settings or StressLabSettings()
        self.controller = controller or RecalculationController(
            row_limit=self.settings.display_row_limit
        )
        self.load_settings = load_settings or LoadSettings()
        self.shocks = shocks or ShockSettings()
        self.account_id = account_id
        self._on_status = on_status

        self.portfolio: Optional[Portfolio] = None
        self.history: Optional[PortfolioPnlSeries] = None
        self.history_stale = False
        self.view: Optional[RecalculationView] = None

        self.status = "Ready."
        self.notes = ""
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def _set_status(self, text: str) -> None:
        self.status = text
        LOGGER.info(text)
        if self._on_status is not None:
            self._on_status(text)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # loads
    # ------------------------------------------------------------------

    async def _run_load(
        self,
        kind: LoadKind,
        start_text: str,
        plan: Callable[[], Union[LoadPlan, LoadRejected]],
    ) -> LoadOutcome:
        """
        Run one load under the session lock.

        `plan` is called once the lock is held and returns the
        (factory, on_success) pair, so it sees the state left by any load
        queued ahead of it.
        """
        if self._lock.locked() and self.load_settings.concurrent_policy == "reject":
            return LoadRejected(kind, "Another load is in progress.")

        async with self._lock:
            planned = plan()
            if isinstance(planned, LoadRejected):
                return planned
            factory, on_success = planned

            self._set_status(start_text)
            try:
                value = await call_with_retries(
                    factory,
                    timeout_seconds=self.load_settings.timeout_seconds,
                    retries=self.load_settings.retries,
                )
            except Exception as exc:
                LOGGER.exception("%s load failed", kind)
                message = describe_failure(kind, exc)
                self._set_status(message)
                return LoadFailed(kind, message, exc)

            message = on_success(value)
            self._set_status(message)
            self.recalculate()
            return LoadSucceeded(kind, message)

    async def load_portfolio(self) -> LoadOutcome:
        def accept(portfolio: Portfolio) -> str:
            self.portfolio = portfolio
            if self.history is not None:
                self.history_stale = True
                self.notes = "Portfolio reloaded: history is stale, reload it for VaR/ES."
            else:
                self.notes = "Tip: load history to enable historical VaR/ES."
            return f"Loaded positions: {len(portfolio)}."

        return await self._run_load(
            "portfolio",
            "Loading portfolio positions and last prices...",
            lambda: (lambda: self.normalizer.load(self.account_id), accept),
        )

    async def load_history(self) -> LoadOutcome:
        def plan() -> Union[LoadPlan, LoadRejected]:
            # Read under the lock: a queued portfolio reload may have just landed
            portfolio = self.portfolio
            if portfolio is None:
                return LoadRejected("history", "Load a portfolio first.")

            def build() -> Awaitable[PortfolioPnlSeries]:
                return self.history_builder.build(
                    portfolio,
                    self.settings.history_days,
                    self.settings.max_history_instruments,
                )

            def accept(history: PortfolioPnlSeries) -> str:
                self.history = history
                self.history_stale = False
                self.notes = (
                    f"HistoryDays={self.settings.history_days}, "
                    f"InstrumentsUsed={history.instruments_used}/{len(portfolio)}"
                )
                return "History loaded. VaR/ES enabled."

            return build, accept

        return await self._run_load(
            "history",
            "Loading candles history for VaR/ES (may take time)...",
            plan,
        )

    # ------------------------------------------------------------------
    # recompute
    # ------------------------------------------------------------------

    def recalculate(self) -> Optional[RecalculationView]:
        if self.portfolio is None:
            return None
        self.view = self.controller.recalculate(self.portfolio, self.shocks, self.history)
        return self.view

    def update_shocks(self, **changes: float) -> Optional[RecalculationView]:
        """Replace the slider values and recompute once."""
        self.shocks = self.shocks.with_changes(**changes)
        return self.recalculate()
