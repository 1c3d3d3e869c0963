# src/portfolio_stress/portfolio/normalizer.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set

from portfolio_stress.data.providers.base import QuoteReferenceProvider
from portfolio_stress.data.schemas.broker import (
    BrokerPositions,
    OptionContract,
    RawPosition,
    ReferenceRecord,
)
from portfolio_stress.errors import ProviderError
from portfolio_stress.portfolio.schemas import (
    Figi,
    InstrumentKind,
    LinkedUnderlying,
    OptionTerms,
    Portfolio,
    Position,
    PositionUid,
    UnderlyingLink,
    UnlinkedUnderlying,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizerSettings:
    """Portfolio-level assumptions stamped onto every snapshot."""

    default_option_vol: float = 0.50
    default_risk_free_rate: float = 0.10
    default_dividend_yield: float = 0.0
    base_currency: str = "RUB"


# =====================================================================
# Reference directory
# =====================================================================


@dataclass(frozen=True)
class ReferenceDirectory:
    """
    Lookup tables built from the provider directories.

    `figi_by_uid` is the injective position-uid -> figi table used to join
    options to their underlying.
    """

    by_figi: Mapping[Figi, ReferenceRecord]
    figi_by_uid: Mapping[PositionUid, Figi]
    options_by_uid: Mapping[PositionUid, OptionContract]

    @classmethod
    def build(
        cls,
        instruments: Iterable[ReferenceRecord],
        options: Iterable[OptionContract],
    ) -> "ReferenceDirectory":
        by_figi: Dict[Figi, ReferenceRecord] = {}
        figi_by_uid: Dict[PositionUid, Figi] = {}

        for rec in instruments:
            if not rec.figi.strip():
                continue
            by_figi[Figi(rec.figi)] = rec
            if rec.position_uid.strip():
                figi_by_uid[PositionUid(rec.position_uid)] = Figi(rec.figi)

        options_by_uid = {
            PositionUid(o.position_uid): o for o in options if o.position_uid.strip()
        }
        return cls(by_figi=by_figi, figi_by_uid=figi_by_uid, options_by_uid=options_by_uid)

    def underlying_figi(self, contract: OptionContract) -> Optional[Figi]:
        uid = contract.basic_asset_position_uid.strip()
        if not uid:
            return None
        return self.figi_by_uid.get(PositionUid(uid))


def figis_needing_prices(
    raw: BrokerPositions, directory: ReferenceDirectory
) -> List[str]:
    """Security and future figis plus the underlying figi of each resolvable option."""
    wanted: Set[str] = set()
    for p in list(raw.securities) + list(raw.futures):
        if p.figi.strip():
            wanted.add(p.figi)

    for p in raw.options:
        contract = directory.options_by_uid.get(PositionUid(p.position_uid))
        if contract is None:
            continue
        figi = directory.underlying_figi(contract)
        if figi is not None:
            wanted.add(figi)

    return sorted(wanted)


# =====================================================================
# Pure normalization
# =====================================================================


def _linear_position(
    raw: RawPosition,
    directory: ReferenceDirectory,
    last_prices: Mapping[str, float],
) -> Position:
    last = float(last_prices.get(raw.figi, 0.0))
    info = directory.by_figi.get(Figi(raw.figi))
    qty = float(raw.balance)

    # Missing reference metadata leaves descriptive fields empty
    return Position(
        instrument_id=raw.figi,
        figi=raw.figi,
        position_uid=info.position_uid if info else "",
        ticker=info.ticker if info else "",
        name=info.name if info else "",
        kind=info.kind if info else InstrumentKind.UNKNOWN,
        currency=info.currency if info else "",
        quantity=qty,
        last_price=last,
        market_value=last * qty,
    )


def _resolve_underlying(
    contract: OptionContract,
    directory: ReferenceDirectory,
    last_prices: Mapping[str, float],
) -> UnderlyingLink:
    uid = contract.basic_asset_position_uid.strip()
    if not uid:
        return UnlinkedUnderlying(reason="option has no underlying position uid")

    figi = directory.figi_by_uid.get(PositionUid(uid))
    if figi is None:
        return UnlinkedUnderlying(
            position_uid=uid, reason="underlying uid not found in reference directory"
        )

    spot = float(last_prices.get(figi, 0.0))
    if spot <= 0.0:
        return UnlinkedUnderlying(
            position_uid=uid, figi=figi, reason="no last price for underlying"
        )

    return LinkedUnderlying(position_uid=uid, figi=figi, spot=spot)


def _option_position(
    raw: RawPosition,
    contract: OptionContract,
    directory: ReferenceDirectory,
    last_prices: Mapping[str, float],
) -> Position:
    link = _resolve_underlying(contract, directory, last_prices)
    if isinstance(link, UnlinkedUnderlying):
        LOGGER.debug("Option %s unlinked: %s", contract.position_uid, link.reason)

    uid = contract.position_uid or raw.position_uid
    terms = OptionTerms(
        strike=contract.strike or 0.0,
        expiration_utc=contract.expiration_utc,
        is_call=contract.is_call,
        contract_size=contract.basic_asset_size,
        underlying=link,
    )

    # No option last price: the engine marks options theoretically
    return Position(
        instrument_id=uid,
        position_uid=uid,
        ticker=contract.ticker,
        name=contract.name,
        kind=InstrumentKind.OPTION,
        currency=contract.currency,
        quantity=float(raw.balance),
        option=terms,
    )


def normalize(
    raw: BrokerPositions,
    directory: ReferenceDirectory,
    last_prices: Mapping[str, float],
    *,
    account_id: str = "",
    settings: Optional[NormalizerSettings] = None,
) -> Portfolio:
    """
    Build a Portfolio from raw balances, reference lookups and last prices.

    Order: securities, then futures, then options, each in broker order.
    Balance lines without a key (no figi, or no option position uid) and
    options absent from the option directory are skipped; everything else
    is kept even when metadata is missing.
    """
    settings = settings or NormalizerSettings()
    positions: List[Position] = []

    for group in (raw.securities, raw.futures):
        for p in group:
            if not p.figi.strip():
                continue
            positions.append(_linear_position(p, directory, last_prices))

    for p in raw.options:
        if not p.position_uid.strip():
            continue
        contract = directory.options_by_uid.get(PositionUid(p.position_uid))
        if contract is None:
            LOGGER.debug("Option %s missing from option directory", p.position_uid)
            continue
        positions.append(_option_position(p, contract, directory, last_prices))

    base_ccy = positions[0].currency if positions and positions[0].currency else None

    return Portfolio(
        account_id=account_id,
        base_currency=base_ccy or settings.base_currency,
        positions=tuple(positions),
        default_option_vol=settings.default_option_vol,
        default_risk_free_rate=settings.default_risk_free_rate,
        default_dividend_yield=settings.default_dividend_yield,
    )


# =====================================================================
# Loader
# =====================================================================


class PortfolioNormalizer:
    """
    Async loader: provider calls -> normalized Portfolio.

    Provider failures propagate; the orchestration layer reports them.
    """

    def __init__(
        self,
        provider: QuoteReferenceProvider,
        settings: Optional[NormalizerSettings] = None,
    ):
        self.provider = provider
        self.settings = settings or NormalizerSettings()

    async def resolve_account(self, account_id: Optional[str] = None) -> str:
        if account_id:
            return account_id
        accounts = await self.provider.account_ids()
        if not accounts:
            raise ProviderError("accounts", "no accounts returned")
        return accounts[0]

    async def load(self, account_id: Optional[str] = None) -> Portfolio:
        account = await self.resolve_account(account_id)
        LOGGER.info("Loading positions for account %s", account)

        raw = await self.provider.positions(account)
        instruments = await self.provider.reference_directory()
        options = await self.provider.option_directory()
        directory = ReferenceDirectory.build(instruments, options)

        figis = figis_needing_prices(raw, directory)
        last_prices = await self.provider.last_prices(figis)
        LOGGER.info("Fetched %d/%d last prices", len(last_prices), len(figis))

        portfolio = normalize(
            raw, directory, last_prices, account_id=account, settings=self.settings
        )
        LOGGER.info("Normalized %d positions", len(portfolio))
        return portfolio
