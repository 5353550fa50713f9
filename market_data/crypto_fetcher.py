"""
Crypto Data Fetcher - цены криптовалют

Часовые и дневные ряды берутся из TokenInsight, недельные из CoinAPI.
Тариф CoinAPI допускает только один запрос за раз, поэтому недельные
запросы проходят через общий однослотовый замок.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from core.data_models import AssetClass, PricePoint, Timeframe
from core.exceptions import NotFoundError
from .base_fetcher import PriceFetcher, walk_backward

logger = logging.getLogger(__name__)

COINAPI_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
COINAPI_PERIOD = "7DAY"
COINAPI_EXCHANGE_PREFIX = "BITSTAMP_SPOT"

HOURS_PER_POINT = 4


def parse_coinapi_time(value: str) -> datetime:
    """Разобрать '2024-01-08T00:00:00.0000000Z' (7 знаков дробной части) как UTC"""
    value = value.rstrip("Z")
    if "." in value:
        base, fraction = value.split(".", 1)
        value = f"{base}.{fraction[:6]}"
        parsed = datetime.strptime(value, f"{COINAPI_TIME_FORMAT}.%f")
    else:
        parsed = datetime.strptime(value, COINAPI_TIME_FORMAT)
    return parsed.replace(tzinfo=timezone.utc)


class CryptoDataFetcher(PriceFetcher):
    """🪙 Загрузчик для класса активов crypto"""

    asset_class = AssetClass.CRYPTO

    def __init__(self, token_insight_base_url: str, token_insight_api_key: str,
                 coinapi_base_url: str, coinapi_api_key: str,
                 shorthands: Dict[str, str],
                 fetch_timeout: float = 20.0,
                 now: Optional[Callable[[], datetime]] = None):
        super().__init__(fetch_timeout=fetch_timeout)
        self.token_insight_base_url = token_insight_base_url.rstrip('/')
        self.token_insight_api_key = token_insight_api_key
        self.coinapi_base_url = coinapi_base_url.rstrip('/')
        self.coinapi_api_key = coinapi_api_key
        self.shorthands = dict(shorthands)
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._coinapi_gate = asyncio.Lock()

    async def _fetch(self, timeframe: Timeframe, symbol: str, length: int) -> List[PricePoint]:
        if timeframe == Timeframe.DAY_1:
            return await self._fetch_daily(symbol, length)
        if timeframe == Timeframe.HOUR_4:
            return await self._fetch_hour4(symbol, length)
        return await self._fetch_weekly(symbol, length)

    # ========== TOKENINSIGHT ==========

    async def _token_insight_chart(self, symbol: str, interval: str, length: int, stage: str) -> List[dict]:
        url = f"{self.token_insight_base_url}/{symbol.lower()}?interval={interval}&length={length}"
        headers = {
            "accept": "application/json",
            "TI_API_KEY": self.token_insight_api_key,
        }
        payload = await self._request_json(url, headers, stage=stage)
        chart = payload["data"]["market_chart"] or []
        return sorted(chart, key=lambda row: row["timestamp"])

    async def _fetch_daily(self, symbol: str, length: int) -> List[PricePoint]:
        chart = await self._token_insight_chart(symbol, "day", length, stage="fetch_daily")
        rows = walk_backward(chart, len(chart) - 1, 1, length)
        return [self._chart_point(row) for row in rows]

    async def _fetch_hour4(self, symbol: str, length: int) -> List[PricePoint]:
        chart = await self._token_insight_chart(symbol, "hour", HOURS_PER_POINT * length, stage="fetch_hourly")
        rows = walk_backward(chart, len(chart) - 1, HOURS_PER_POINT, length)
        return [self._chart_point(row) for row in rows]

    @staticmethod
    def _chart_point(row: dict) -> PricePoint:
        return PricePoint(
            time=datetime.fromtimestamp(row["timestamp"] / 1000, tz=timezone.utc),
            price=float(row["price"]),
        )

    # ========== COINAPI ==========

    async def _fetch_weekly(self, symbol: str, length: int) -> List[PricePoint]:
        shorthand = self.shorthands.get(symbol)
        if shorthand is None:
            raise NotFoundError(f"cant map crypto ticker {symbol}", stage="fetch_weekly")

        now = self._now()
        time_end = now.strftime(COINAPI_TIME_FORMAT)
        time_start = (now - timedelta(days=length * 7)).strftime(COINAPI_TIME_FORMAT)

        url = (f"{self.coinapi_base_url}/{COINAPI_EXCHANGE_PREFIX}_{shorthand}_USD/history"
               f"?time_start={time_start}&time_end={time_end}&period_id={COINAPI_PERIOD}&limit={length}")
        headers = {
            "accept": "application/json",
            "X-CoinAPI-Key": self.coinapi_api_key,
        }

        async with self._coinapi_gate:
            payload = await self._request_json(url, headers, stage="fetch_weekly")

        rows = sorted(payload or [], key=lambda row: row["time_period_end"])
        picked = walk_backward(rows, len(rows) - 1, 1, length)
        return [
            PricePoint(time=parse_coinapi_time(row["time_period_end"]), price=float(row["price_close"]))
            for row in picked
        ]


__all__ = ["CryptoDataFetcher", "parse_coinapi_time"]
