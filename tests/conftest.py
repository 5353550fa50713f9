"""
Shared fixtures: an in-memory registry store, deterministic fetchers and
a notifier that records what it would have sent.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

import pytest

from core.data_models import AssetClass, Binding, PricePoint, Ticker, Timeframe
from core.exceptions import FetchError
from database.repositories.base_repository import RegistryStore
from market_data.base_fetcher import PriceFetcher
from strategies.base_strategy import BaseStrategy, EvaluationResult, SignalType

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

PERIODS = {
    Timeframe.HOUR_4: timedelta(hours=4),
    Timeframe.DAY_1: timedelta(days=1),
    Timeframe.WEEK_1: timedelta(weeks=1),
}


def make_points(count: int, start: int = 0, timeframe: Timeframe = Timeframe.DAY_1,
                price_offset: float = 100.0) -> List[PricePoint]:
    """`count` ascending points starting `start` periods after BASE_TIME"""
    period = PERIODS[timeframe]
    return [
        PricePoint(time=BASE_TIME + period * (start + i), price=price_offset + start + i)
        for i in range(count)
    ]


class InMemoryRegistryStore(RegistryStore):
    """Registry store with snapshot/restore transactions"""

    def __init__(self):
        self.tickers: Dict[str, AssetClass] = {}
        self.bindings: List[Binding] = []
        self.windows: Dict[Tuple[str, Timeframe], Dict[datetime, float]] = {}
        self.fail_stage: Optional[str] = None
        self.healthy = True

    async def insert_ticker(self, ticker: Ticker) -> None:
        self.tickers[ticker.symbol] = ticker.asset_class

    async def get_tickers(self) -> List[Ticker]:
        return [Ticker(symbol, asset_class) for symbol, asset_class in sorted(self.tickers.items())]

    async def get_asset_class(self, symbol: str) -> Optional[AssetClass]:
        return self.tickers.get(symbol)

    async def is_ticker_registered(self, symbol: str) -> bool:
        return symbol in self.tickers

    async def insert_binding(self, binding: Binding) -> None:
        if binding not in self.bindings:
            self.bindings.append(binding)

    async def get_bindings_by_ticker(self, symbol: str) -> List[Binding]:
        return [binding for binding in self.bindings if binding.ticker_symbol == symbol]

    async def get_bindings_by_timeframe(self, timeframe: Timeframe) -> List[Binding]:
        return [binding for binding in self.bindings if binding.timeframe == timeframe]

    async def get_tickers_by_timeframe(self, timeframe: Timeframe) -> List[Ticker]:
        seen: List[str] = []
        for binding in self.bindings:
            if binding.timeframe == timeframe and binding.ticker_symbol not in seen:
                seen.append(binding.ticker_symbol)
        return [Ticker(symbol, self.tickers[symbol]) for symbol in seen]

    async def get_strategy_bindings_by_timeframe(self, timeframe: Timeframe) -> List[Tuple[str, str]]:
        return [(binding.ticker_symbol, binding.strategy)
                for binding in self.bindings if binding.timeframe == timeframe]

    async def get_price_points(self, symbol: str, timeframe: Timeframe) -> List[PricePoint]:
        window = self.windows.get((symbol, timeframe), {})
        return [PricePoint(time=time, price=window[time]) for time in sorted(window)]

    async def get_price_series(self, symbol: str, timeframe: Timeframe) -> List[float]:
        return [point.price for point in await self.get_price_points(symbol, timeframe)]

    async def delete_oldest(self, symbol: str, timeframe: Timeframe, count: int, conn) -> None:
        if self.fail_stage == "delete_oldest":
            raise RuntimeError("delete failed")
        window = self.windows.setdefault((symbol, timeframe), {})
        for time in sorted(window)[:count]:
            del window[time]

    async def insert_points(self, symbol: str, timeframe: Timeframe, points: List[PricePoint], conn) -> None:
        window = self.windows.setdefault((symbol, timeframe), {})
        for point in points[: len(points) // 2]:
            window[point.time] = point.price
        if self.fail_stage == "insert_points":
            raise RuntimeError("insert failed")
        for point in points[len(points) // 2:]:
            window[point.time] = point.price

    @asynccontextmanager
    async def transaction(self):
        snapshot = {key: dict(window) for key, window in self.windows.items()}
        try:
            yield self
        except BaseException:
            self.windows = snapshot
            raise

    async def ping(self) -> bool:
        return self.healthy

    def seed_window(self, symbol: str, timeframe: Timeframe, points: List[PricePoint]):
        self.windows[(symbol, timeframe)] = {point.time: point.price for point in points}


class StubFetcher(PriceFetcher):
    """Deterministic fetcher: newest point is always at the same timestamp"""

    def __init__(self, asset_class: AssetClass, fail_symbols: Set[str] = None,
                 delays: Dict[str, float] = None):
        super().__init__()
        self.asset_class = asset_class
        self.fail_symbols = fail_symbols or set()
        self.delays = delays or {}
        self.calls: List[Tuple[Timeframe, str, int]] = []

    async def _fetch(self, timeframe: Timeframe, symbol: str, length: int) -> List[PricePoint]:
        self.calls.append((timeframe, symbol, length))
        if symbol in self.delays:
            await asyncio.sleep(self.delays[symbol])
        if symbol in self.fail_symbols:
            raise FetchError("HTTP 503: provider unavailable", stage="fetch_stub")
        return make_points(length, start=1000 - length, timeframe=timeframe)


class StaticStrategy(BaseStrategy):
    """Always returns the same verdict"""

    def __init__(self, name: str, is_fulfilled: bool = True, signal_type: SignalType = SignalType.BUY):
        self._name = name
        self.is_fulfilled = is_fulfilled
        self.signal_type = signal_type
        self.seen_prices: List[List[float]] = []

    @property
    def name(self) -> str:
        return self._name

    async def evaluate(self, prices: List[float]) -> EvaluationResult:
        self.seen_prices.append(list(prices))
        return self._result(self.is_fulfilled, f"{len(prices)} prices", self.signal_type)


class FailingStrategy(BaseStrategy):

    @property
    def name(self) -> str:
        return "broken"

    async def evaluate(self, prices: List[float]) -> EvaluationResult:
        raise RuntimeError("indicator exploded")


class FakeNotifier:
    """Collects reports instead of sending them"""

    def __init__(self):
        self.reports: List[str] = []
        self.closed = False

    async def send_report(self, text: str):
        if text:
            self.reports.append(text)

    async def close(self):
        self.closed = True


@pytest.fixture
def store():
    return InMemoryRegistryStore()


@pytest.fixture
def stock_fetcher():
    return StubFetcher(AssetClass.STOCK)


@pytest.fixture
def crypto_fetcher():
    return StubFetcher(AssetClass.CRYPTO)
