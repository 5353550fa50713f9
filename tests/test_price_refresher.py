"""Tests for single and per-timeframe window refreshes"""

import pytest

from core.data_models import AssetClass, Binding, MAX_WINDOW_LENGTH, Ticker, Timeframe
from core.exceptions import DeadlineExceededError, FetchError, NotFoundError, StoreError
from market_data.fetcher_registry import FetcherRegistry
from market_data.price_refresher import PriceRefresher
from market_data.window_store import WindowStore
from tests.conftest import StubFetcher


async def register(store, symbol, asset_class, *timeframes):
    await store.insert_ticker(Ticker(symbol, asset_class))
    for timeframe in timeframes:
        await store.insert_binding(Binding(symbol, timeframe, "rsi30"))


def make_refresher(store, *fetchers, refresh_timeout=30.0):
    return PriceRefresher(store, FetcherRegistry(fetchers), WindowStore(store),
                          refresh_timeout=refresh_timeout)


@pytest.mark.asyncio
async def test_refresh_one_stores_full_window(store, stock_fetcher):
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.DAY_1)
    refresher = make_refresher(store, stock_fetcher)

    summary = await refresher.refresh_one("AAPL", Timeframe.DAY_1)

    assert stock_fetcher.calls == [(Timeframe.DAY_1, "AAPL", MAX_WINDOW_LENGTH)]
    assert summary.ticker == "AAPL"
    assert summary.asset_class == AssetClass.STOCK
    assert len(summary.refreshed_prices) == MAX_WINDOW_LENGTH
    assert summary.to_dict()["class"] == "stock"

    stored = await store.get_price_points("AAPL", Timeframe.DAY_1)
    assert stored == summary.refreshed_prices


@pytest.mark.asyncio
async def test_refresh_is_idempotent(store, stock_fetcher):
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.DAY_1)
    refresher = make_refresher(store, stock_fetcher)

    await refresher.refresh_one("AAPL", Timeframe.DAY_1)
    first = await store.get_price_points("AAPL", Timeframe.DAY_1)
    await refresher.refresh_one("AAPL", Timeframe.DAY_1)
    second = await store.get_price_points("AAPL", Timeframe.DAY_1)

    assert first == second
    assert len(second) == MAX_WINDOW_LENGTH


@pytest.mark.asyncio
async def test_unregistered_ticker(store, stock_fetcher):
    refresher = make_refresher(store, stock_fetcher)

    with pytest.raises(NotFoundError, match="TSLA is not registered"):
        await refresher.refresh_one("TSLA", Timeframe.DAY_1)
    assert stock_fetcher.calls == []


@pytest.mark.asyncio
async def test_no_fetcher_for_class(store, stock_fetcher):
    await register(store, "BITCOIN", AssetClass.CRYPTO, Timeframe.DAY_1)
    refresher = make_refresher(store, stock_fetcher)

    with pytest.raises(NotFoundError, match="no fetcher for class crypto"):
        await refresher.refresh_one("BITCOIN", Timeframe.DAY_1)


@pytest.mark.asyncio
async def test_fetch_failure_leaves_window_unchanged(store):
    fetcher = StubFetcher(AssetClass.STOCK, fail_symbols={"AAPL"})
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.DAY_1)
    refresher = make_refresher(store, fetcher)

    with pytest.raises(FetchError) as exc_info:
        await refresher.refresh_one("AAPL", Timeframe.DAY_1)

    assert exc_info.value.ticker == "AAPL"
    assert await store.get_price_points("AAPL", Timeframe.DAY_1) == []


@pytest.mark.asyncio
async def test_batch_partial_failure_keeps_binding_order(store):
    stocks = StubFetcher(AssetClass.STOCK, fail_symbols={"MSFT"})
    crypto = StubFetcher(AssetClass.CRYPTO)
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.HOUR_4)
    await register(store, "MSFT", AssetClass.STOCK, Timeframe.HOUR_4)
    await register(store, "BITCOIN", AssetClass.CRYPTO, Timeframe.HOUR_4)
    refresher = make_refresher(store, stocks, crypto)

    batch = await refresher.refresh_by_timeframe(Timeframe.HOUR_4)

    assert batch.success is False
    assert [summary.ticker for summary in batch.summaries] == ["AAPL", "BITCOIN"]
    assert isinstance(batch.error, FetchError)
    assert batch.error.ticker == "MSFT"
    assert batch.error.timeframe == "H4"

    assert len(await store.get_price_series("AAPL", Timeframe.HOUR_4)) == MAX_WINDOW_LENGTH
    assert len(await store.get_price_series("BITCOIN", Timeframe.HOUR_4)) == MAX_WINDOW_LENGTH
    assert await store.get_price_series("MSFT", Timeframe.HOUR_4) == []

    body = batch.to_dict()
    assert [item["ticker"] for item in body["refreshed"]] == ["AAPL", "BITCOIN"]
    assert body["errors"][0]["ticker"] == "MSFT"


@pytest.mark.asyncio
async def test_batch_first_error_in_binding_order(store):
    # The later-bound ticker fails first in wall-clock time
    stocks = StubFetcher(AssetClass.STOCK, fail_symbols={"AAPL", "MSFT"}, delays={"AAPL": 0.05})
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.DAY_1)
    await register(store, "MSFT", AssetClass.STOCK, Timeframe.DAY_1)
    refresher = make_refresher(store, stocks)

    batch = await refresher.refresh_by_timeframe(Timeframe.DAY_1)

    assert [error.ticker for error in batch.errors] == ["AAPL", "MSFT"]
    assert batch.error.ticker == "AAPL"


@pytest.mark.asyncio
async def test_batch_only_refreshes_bound_tickers(store, stock_fetcher):
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.DAY_1)
    await register(store, "MSFT", AssetClass.STOCK, Timeframe.WEEK_1)
    refresher = make_refresher(store, stock_fetcher)

    batch = await refresher.refresh_by_timeframe(Timeframe.DAY_1)

    assert batch.success is True
    assert [call[1] for call in stock_fetcher.calls] == ["AAPL"]


@pytest.mark.asyncio
async def test_slow_ticker_exceeds_deadline(store):
    stocks = StubFetcher(AssetClass.STOCK, delays={"MSFT": 1.0})
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.DAY_1)
    await register(store, "MSFT", AssetClass.STOCK, Timeframe.DAY_1)
    refresher = make_refresher(store, stocks, refresh_timeout=0.05)

    batch = await refresher.refresh_by_timeframe(Timeframe.DAY_1)

    assert [summary.ticker for summary in batch.summaries] == ["AAPL"]
    assert isinstance(batch.error, DeadlineExceededError)
    assert batch.error.ticker == "MSFT"
    assert batch.error.stage == "refresh"


@pytest.mark.asyncio
async def test_unexpected_failure_becomes_store_error(store, stock_fetcher):
    await register(store, "AAPL", AssetClass.STOCK, Timeframe.DAY_1)
    refresher = make_refresher(store, stock_fetcher)

    async def broken_insert(symbol, timeframe, points, conn):
        raise OSError("disk full")

    store.insert_points = broken_insert

    batch = await refresher.refresh_by_timeframe(Timeframe.DAY_1)

    assert isinstance(batch.error, StoreError)
    assert batch.error.stage == "insert_points"


@pytest.mark.asyncio
async def test_fetch_preview_does_not_store(store, crypto_fetcher):
    await register(store, "BITCOIN", AssetClass.CRYPTO, Timeframe.WEEK_1)
    refresher = make_refresher(store, crypto_fetcher)

    points = await refresher.fetch_preview("BITCOIN", Timeframe.WEEK_1)

    assert len(points) == MAX_WINDOW_LENGTH
    assert await store.get_price_points("BITCOIN", Timeframe.WEEK_1) == []
