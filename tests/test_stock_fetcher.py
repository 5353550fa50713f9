"""Tests for the RapidAPI stock fetcher with the HTTP call stubbed out"""

from datetime import datetime, timedelta

import pytest

from core.data_models import Timeframe
from core.exceptions import FetchError, ValidationError
from market_data.stock_fetcher import INTRADAY_MAX_LENGTH, NEW_YORK, StockDataFetcher

NOW = datetime(2024, 3, 15, 10, 30, tzinfo=NEW_YORK)


def make_fetcher(payload):
    fetcher = StockDataFetcher("https://stocks.example/v1/", "key-123", "stocks.example",
                               now=lambda: NOW)
    fetcher.requests = []

    async def fake_request_json(url, headers, stage):
        fetcher.requests.append((url, headers, stage))
        return payload

    fetcher._request_json = fake_request_json
    return fetcher


def daily_rows(count, closes=None):
    start = datetime(2024, 1, 1)
    return [
        {"Date": (start + timedelta(days=i)).strftime("%Y-%m-%d"),
         "Open": 1.0, "High": 1.0, "Low": 1.0, "Volume": 100,
         "Close": closes[i] if closes else 100.0 + i}
        for i in range(count)
    ]


def hourly_rows(count):
    start = datetime(2024, 3, 1, 0, 0)
    return [
        {"Date": (start + timedelta(hours=i)).strftime("%Y-%m-%d %H:%M"), "Close": float(i)}
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_daily_request_and_walk():
    fetcher = make_fetcher({"Metadata": {"Symbol": "AAPL"}, "Results": daily_rows(10)})
    points = await fetcher.fetch(Timeframe.DAY_1, "AAPL", 3)

    url, headers, _ = fetcher.requests[0]
    assert url == "https://stocks.example/v1/daily?symbol=AAPL&dateStart=2024-3-9&dateEnd=2024-3-15"
    assert headers == {"X-RapidAPI-Key": "key-123", "X-RapidAPI-Host": "stocks.example"}

    assert [point.price for point in points] == [107.0, 108.0, 109.0]
    assert points[0].time == datetime(2024, 1, 8, tzinfo=NEW_YORK)
    assert points == sorted(points, key=lambda point: point.time)


@pytest.mark.asyncio
async def test_weekly_takes_every_second_row():
    fetcher = make_fetcher({"Results": daily_rows(10)})
    points = await fetcher.fetch(Timeframe.WEEK_1, "AAPL", 3)

    url = fetcher.requests[0][0]
    # 3 * 2 * 7 = 42 days back
    assert "weekly?symbol=AAPL&dateStart=2024-2-2&dateEnd=2024-3-15" in url
    assert [point.price for point in points] == [105.0, 107.0, 109.0]


@pytest.mark.asyncio
async def test_weekly_skips_duplicated_last_row():
    closes = [float(i) for i in range(9)] + [8.0]
    fetcher = make_fetcher({"Results": daily_rows(10, closes)})
    points = await fetcher.fetch(Timeframe.WEEK_1, "AAPL", 3)

    assert [point.price for point in points] == [4.0, 6.0, 8.0]


@pytest.mark.asyncio
async def test_intraday_takes_every_fourth_hour():
    fetcher = make_fetcher({"Results": hourly_rows(8)})
    points = await fetcher.fetch(Timeframe.HOUR_4, "AAPL", 2)

    assert fetcher.requests[0][0] == "https://stocks.example/v1/intraday?symbol=AAPL&interval=60min&maxreturn=8"
    assert [point.price for point in points] == [3.0, 7.0]
    assert points[1].time == datetime(2024, 3, 1, 7, 0, tzinfo=NEW_YORK)


@pytest.mark.asyncio
async def test_intraday_length_is_capped():
    fetcher = make_fetcher({"Results": hourly_rows(4 * INTRADAY_MAX_LENGTH)})
    points = await fetcher.fetch(Timeframe.HOUR_4, "AAPL", 300)

    assert f"maxreturn={4 * INTRADAY_MAX_LENGTH}" in fetcher.requests[0][0]
    assert len(points) == INTRADAY_MAX_LENGTH


@pytest.mark.asyncio
async def test_length_above_window_is_rejected_before_request():
    fetcher = make_fetcher({"Results": daily_rows(400)})

    with pytest.raises(ValidationError, match="maximum length is 300") as exc_info:
        await fetcher.fetch(Timeframe.DAY_1, "AAPL", 301)
    assert fetcher.requests == []
    assert exc_info.value.ticker == "AAPL"
    assert exc_info.value.timeframe == "D1"
    assert exc_info.value.stage == "fetch"


@pytest.mark.asyncio
async def test_too_few_rows_is_fetch_error():
    fetcher = make_fetcher({"Results": daily_rows(2)})

    with pytest.raises(FetchError, match="provider returned 2 rows, need 5") as exc_info:
        await fetcher.fetch(Timeframe.DAY_1, "AAPL", 5)
    assert exc_info.value.ticker == "AAPL"
    assert exc_info.value.timeframe == "D1"


@pytest.mark.asyncio
async def test_provider_error_carries_context():
    fetcher = make_fetcher(None)

    async def failing_request_json(url, headers, stage):
        raise FetchError("HTTP 429: Too Many Requests", stage=stage)

    fetcher._request_json = failing_request_json

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(Timeframe.DAY_1, "MSFT", 10)
    assert exc_info.value.to_dict() == {
        "message": "HTTP 429: Too Many Requests",
        "ticker": "MSFT",
        "timeframe": "D1",
        "stage": "fetch_daily",
    }


@pytest.mark.asyncio
async def test_malformed_payload_is_fetch_error():
    fetcher = make_fetcher({"Metadata": {}})

    with pytest.raises(FetchError) as exc_info:
        await fetcher.fetch(Timeframe.DAY_1, "AAPL", 3)
    assert exc_info.value.stage == "decode"
