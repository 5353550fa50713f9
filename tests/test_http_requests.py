"""
Provider HTTP handling against a local aiohttp server: status, transport,
timeout and body decoding failures
"""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.data_models import AssetClass, Binding, Ticker, Timeframe
from core.exceptions import FetchError
from market_data.stock_fetcher import StockDataFetcher
from market_data.window_store import WindowStore
from strategies.fear_greed_strategy import FearGreedStrategy
from strategies.strategy_orchestrator import StrategyOrchestrator
from strategies.strategy_registry import StrategyRegistry

NOT_UTF8_BODY = b'{"data": "\xff\xfe"}'


def stock_rows(count):
    return [{"Date": f"2024-01-{i + 1:02d}", "Close": 100.0 + i} for i in range(count)]


async def ok_daily(request):
    return web.json_response({"Results": stock_rows(10)})


async def unavailable(request):
    return web.Response(status=503, text="Service Unavailable")


async def broken_json(request):
    return web.Response(text='{"Results": [', content_type="application/json")


async def not_utf8(request):
    return web.Response(body=NOT_UTF8_BODY, content_type="application/json", charset="utf-8")


async def slow(request):
    await asyncio.sleep(2)
    return web.json_response({})


async def fng_greed(request):
    return web.json_response({"data": [{"value": "74", "value_classification": "Greed"}]})


def build_provider_app():
    app = web.Application()
    for prefix, handler in (("ok", ok_daily), ("unavailable", unavailable), ("broken", broken_json),
                            ("latin", not_utf8), ("slow", slow)):
        app.router.add_get(f"/{prefix}/daily", handler)
        app.router.add_get(f"/{prefix}/fng/", handler if prefix != "ok" else fng_greed)
    return app


@pytest_asyncio.fixture
async def provider():
    server = TestServer(build_provider_app())
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def make_stock_fetcher(provider):
    fetchers = []

    def factory(prefix, fetch_timeout=5.0):
        fetcher = StockDataFetcher(str(provider.make_url(f"/{prefix}")), "key", "host",
                                   fetch_timeout=fetch_timeout)
        fetchers.append(fetcher)
        return fetcher

    yield factory
    for fetcher in fetchers:
        await fetcher.close()


@pytest_asyncio.fixture
async def make_fng(provider):
    strategies = []

    def factory(prefix, request_timeout=5.0):
        strategy = FearGreedStrategy(request_timeout=request_timeout,
                                     api_url=str(provider.make_url(f"/{prefix}/fng/")))
        strategies.append(strategy)
        return strategy

    yield factory
    for strategy in strategies:
        await strategy.close()


# ========== PRICE FETCHERS ==========

@pytest.mark.asyncio
async def test_stock_fetch_over_http(make_stock_fetcher):
    fetcher = make_stock_fetcher("ok")

    points = await fetcher.fetch(Timeframe.DAY_1, "AAPL", 3)

    assert [point.price for point in points] == [107.0, 108.0, 109.0]
    assert fetcher.stats == {"requests": 1, "request_errors": 0}


@pytest.mark.asyncio
@pytest.mark.parametrize("prefix, message", [
    ("unavailable", "HTTP 503: Service Unavailable"),
    ("broken", "JSON decode error"),
    ("latin", "JSON decode error"),
])
async def test_stock_fetch_failures(make_stock_fetcher, prefix, message):
    fetcher = make_stock_fetcher(prefix)

    with pytest.raises(FetchError, match=message) as exc_info:
        await fetcher.fetch(Timeframe.DAY_1, "AAPL", 3)

    assert exc_info.value.stage == "fetch_daily"
    assert exc_info.value.ticker == "AAPL"
    assert exc_info.value.timeframe == "D1"
    assert fetcher.stats["request_errors"] == 1


@pytest.mark.asyncio
async def test_stock_fetch_timeout(make_stock_fetcher):
    fetcher = make_stock_fetcher("slow", fetch_timeout=0.2)

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(Timeframe.DAY_1, "AAPL", 3)

    assert exc_info.value.stage == "fetch_daily"
    assert fetcher.stats["request_errors"] == 1


@pytest.mark.asyncio
async def test_stock_fetch_unreachable_host():
    fetcher = StockDataFetcher("http://127.0.0.1:9", "key", "host", fetch_timeout=2.0)
    try:
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(Timeframe.DAY_1, "AAPL", 3)
    finally:
        await fetcher.close()

    assert exc_info.value.stage == "fetch_daily"


# ========== FEAR & GREED ==========

@pytest.mark.asyncio
async def test_fng_over_http(make_fng):
    result = await make_fng("ok").evaluate([])

    assert result.is_fulfilled is True
    assert result.message == "Strong Sell! Greed(74)"


@pytest.mark.asyncio
@pytest.mark.parametrize("prefix, message", [
    ("unavailable", "get fng api: HTTP 503"),
    ("broken", "unmarshal fng api resp body"),
    ("latin", "unmarshal fng api resp body"),
])
async def test_fng_failures_degrade_to_verdict(make_fng, prefix, message):
    result = await make_fng(prefix).evaluate([])

    assert result.is_fulfilled is False
    assert result.message.startswith(message)


@pytest.mark.asyncio
async def test_fng_timeout_degrades_to_verdict(make_fng):
    result = await make_fng("slow", request_timeout=0.2).evaluate([])

    assert result.is_fulfilled is False
    assert result.message.startswith("get fng api")


@pytest.mark.asyncio
async def test_undecodable_fng_body_does_not_fail_evaluation(store, make_fng):
    await store.insert_ticker(Ticker("BITCOIN", AssetClass.CRYPTO))
    await store.insert_binding(Binding("BITCOIN", Timeframe.DAY_1, "fng"))
    orchestrator = StrategyOrchestrator(store, WindowStore(store), StrategyRegistry([make_fng("latin")]))

    results = await orchestrator.evaluate(Timeframe.DAY_1)

    verdict = results["BITCOIN"][0]
    assert verdict.strategy_name == "fng"
    assert verdict.is_fulfilled is False
    assert verdict.message.startswith("unmarshal fng api resp body")
