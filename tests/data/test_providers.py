# tests/data/test_providers.py
import asyncio
from datetime import date, datetime, timezone

import polars as pl
import pytest
import yaml

from portfolio_stress.data.providers.csv_candles import CsvCandleProvider
from portfolio_stress.data.providers.static import StaticQuoteProvider
from portfolio_stress.errors import ProviderError

SNAPSHOT = {
    "accounts": ["acc-1"],
    "positions": {
        "acc-1": {
            "securities": [{"figi": "BBG004730N88", "balance": 10}],
            "options": [{"position_uid": "opt-1", "balance": 2}],
        }
    },
    "instruments": [
        {"figi": "BBG004730N88", "ticker": "SBER", "kind": "share", "position_uid": "u-sber"}
    ],
    "options": [
        {
            "position_uid": "opt-1",
            "strike": 300,
            "expiration_utc": "2026-03-20T00:00:00Z",
            "basic_asset_position_uid": "u-sber",
        }
    ],
    "last_prices": {"BBG004730N88": 290.5},
}


@pytest.mark.asyncio
async def test_static_provider_from_yaml(tmp_path):
    path = tmp_path / "snapshot.yaml"
    path.write_text(yaml.safe_dump(SNAPSHOT))

    provider = StaticQuoteProvider.from_file(path)

    assert await provider.account_ids() == ["acc-1"]
    positions = await provider.positions("acc-1")
    assert positions.securities[0].balance == 10.0
    assert positions.futures == []
    options = await provider.option_directory()
    assert options[0].expiration_utc == datetime(2026, 3, 20, tzinfo=timezone.utc)
    assert await provider.last_prices(["BBG004730N88", "MISSING"]) == {
        "BBG004730N88": 290.5
    }


def test_static_provider_rejects_bad_files(tmp_path):
    with pytest.raises(ProviderError):
        StaticQuoteProvider.from_file(tmp_path / "missing.yaml")

    bad = tmp_path / "snapshot.txt"
    bad.write_text("accounts: []")
    with pytest.raises(ProviderError):
        StaticQuoteProvider.from_file(bad)

    invalid = tmp_path / "snapshot.json"
    invalid.write_text('{"accounts": "not-a-list", "unexpected": 1}')
    with pytest.raises(ProviderError):
        StaticQuoteProvider.from_file(invalid)


def _write_candles(path):
    pl.DataFrame(
        {
            "instrument_id": ["B", "A", "A", "A", "B"],
            "date": [
                date(2025, 1, 2),
                date(2025, 1, 3),
                date(2025, 1, 1),
                date(2025, 1, 2),
                date(2025, 1, 1),
            ],
            "close": [20.0, 3.0, 1.0, 2.0, 10.0],
        }
    ).write_csv(path)


@pytest.mark.asyncio
async def test_csv_candles_sorted_and_windowed(tmp_path):
    path = tmp_path / "candles.csv"
    _write_candles(path)
    provider = CsvCandleProvider(path)

    closes = await provider.daily_closes(
        "A",
        datetime(2025, 1, 1, tzinfo=timezone.utc),
        datetime(2025, 1, 3, tzinfo=timezone.utc),
    )
    assert closes == [1.0, 2.0, 3.0]

    window = await provider.daily_closes(
        "A",
        datetime(2025, 1, 2, tzinfo=timezone.utc),
        datetime(2025, 1, 5, tzinfo=timezone.utc),
    )
    assert window == [2.0, 3.0]

    assert await provider.daily_closes(
        "B",
        datetime(2024, 12, 1, tzinfo=timezone.utc),
        datetime(2025, 2, 1, tzinfo=timezone.utc),
    ) == [10.0, 20.0]


@pytest.mark.asyncio
async def test_csv_candles_unknown_instrument_is_empty(tmp_path):
    path = tmp_path / "candles.csv"
    _write_candles(path)

    closes = await CsvCandleProvider(path).daily_closes(
        "ZZZ",
        datetime(2025, 1, 1, tzinfo=timezone.utc),
        datetime(2025, 1, 3, tzinfo=timezone.utc),
    )
    assert closes == []


@pytest.mark.asyncio
async def test_csv_candles_concurrent_first_calls_parse_once(tmp_path):
    path = tmp_path / "candles.csv"
    _write_candles(path)
    provider = CsvCandleProvider(path)

    loads = []
    original = provider._load

    def counting_load():
        loads.append(1)
        return original()

    provider._load = counting_load
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)
    end = datetime(2025, 1, 3, tzinfo=timezone.utc)

    a, b = await asyncio.gather(
        provider.daily_closes("A", start, end),
        provider.daily_closes("B", start, end),
    )

    assert a == [1.0, 2.0, 3.0]
    assert b == [10.0, 20.0]
    assert len(loads) == 1


@pytest.mark.asyncio
async def test_csv_candles_validation_errors(tmp_path):
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)

    with pytest.raises(ProviderError):
        await CsvCandleProvider(tmp_path / "missing.csv").daily_closes("A", start, start)

    no_close = tmp_path / "no_close.csv"
    pl.DataFrame({"instrument_id": ["A"], "date": [date(2025, 1, 1)]}).write_csv(no_close)
    with pytest.raises(ProviderError):
        await CsvCandleProvider(no_close).daily_closes("A", start, start)

    negative = tmp_path / "negative.csv"
    pl.DataFrame(
        {"instrument_id": ["A"], "date": [date(2025, 1, 1)], "close": [-1.0]}
    ).write_csv(negative)
    with pytest.raises(ProviderError):
        await CsvCandleProvider(negative).daily_closes("A", start, start)
