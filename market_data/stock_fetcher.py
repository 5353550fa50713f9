"""
Stock Data Fetcher - цены акций

Провайдер исторических данных на RapidAPI. Даты в ответе указаны по
времени биржи (America/New_York).
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from core.data_models import AssetClass, PricePoint, Timeframe
from .base_fetcher import PriceFetcher, walk_backward

logger = logging.getLogger(__name__)

NEW_YORK = ZoneInfo("America/New_York")

# Лимит intraday у провайдера; на одну точку H4 запрашиваются 4 часовые строки
INTRADAY_MAX_LENGTH = 250

INTRADAY_DATE_FORMAT = "%Y-%m-%d %H:%M"
DAILY_DATE_FORMAT = "%Y-%m-%d"


class StockDataFetcher(PriceFetcher):
    """📈 Загрузчик для класса активов stock"""

    asset_class = AssetClass.STOCK

    TIMEFRAME_ENDPOINTS: Dict[Timeframe, str] = {
        Timeframe.DAY_1: "daily",
        Timeframe.WEEK_1: "weekly",
        Timeframe.HOUR_4: "intraday",
    }

    def __init__(self, base_url: str, api_key: str, api_host: str,
                 fetch_timeout: float = 20.0,
                 now: Optional[Callable[[], datetime]] = None):
        super().__init__(fetch_timeout=fetch_timeout)
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.api_host = api_host
        self._now = now or (lambda: datetime.now(NEW_YORK))

    def _headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.api_host,
        }

    async def _fetch(self, timeframe: Timeframe, symbol: str, length: int) -> List[PricePoint]:
        endpoint = self.TIMEFRAME_ENDPOINTS[timeframe]
        if endpoint == "intraday":
            return await self._fetch_intraday(symbol, length)
        return await self._fetch_historical(endpoint, symbol, length)

    async def _fetch_intraday(self, symbol: str, length: int) -> List[PricePoint]:
        if length > INTRADAY_MAX_LENGTH:
            logger.info(f"Intraday length for {symbol} capped at {INTRADAY_MAX_LENGTH} (requested {length})")
            length = INTRADAY_MAX_LENGTH

        url = f"{self.base_url}/intraday?symbol={symbol}&interval=60min&maxreturn={4 * length}"
        payload = await self._request_json(url, self._headers(), stage="fetch_intraday")
        results = payload["Results"] or []

        rows = walk_backward(results, len(results) - 1, 4, length)
        return [self._to_point(row, INTRADAY_DATE_FORMAT) for row in rows]

    async def _fetch_historical(self, endpoint: str, symbol: str, length: int) -> List[PricePoint]:
        today = self._now()
        days_back = length * 2 if endpoint == "daily" else length * 2 * 7
        start = today - timedelta(days=days_back)

        url = (f"{self.base_url}/{endpoint}?symbol={symbol}"
               f"&dateStart={self._format_date(start)}&dateEnd={self._format_date(today)}")
        payload = await self._request_json(url, self._headers(), stage=f"fetch_{endpoint}")
        results = payload["Results"] or []

        start_index, step = self._start_index_and_step(endpoint, results)
        rows = walk_backward(results, start_index, step, length)
        return [self._to_point(row, DAILY_DATE_FORMAT) for row in rows]

    @staticmethod
    def _start_index_and_step(endpoint: str, results: List[dict]) -> Tuple[int, int]:
        """
        Откуда начинается обратный проход и какой у него шаг

        Недельный endpoint не выровнен по неделям и повторяет граничную
        строку, поэтому берётся каждая вторая строка. Если у двух последних
        строк одинаковый Close, последняя считается дублем и пропускается.
        """
        if endpoint == "daily":
            return len(results) - 1, 1

        if len(results) >= 2 and results[-1]["Close"] == results[-2]["Close"]:
            return len(results) - 2, 2
        return len(results) - 1, 2

    @staticmethod
    def _format_date(value: datetime) -> str:
        # Провайдер ждёт Y-M-D без ведущих нулей
        return f"{value.year}-{value.month}-{value.day}"

    @staticmethod
    def _to_point(row: dict, date_format: str) -> PricePoint:
        parsed = datetime.strptime(row["Date"], date_format).replace(tzinfo=NEW_YORK)
        return PricePoint(time=parsed, price=float(row["Close"]))


__all__ = ["StockDataFetcher", "INTRADAY_MAX_LENGTH", "NEW_YORK"]
