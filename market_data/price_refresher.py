"""
Price Refresher - обновление скользящих окон цен

Загружает последнее окно цен для одного тикера или для всех тикеров,
привязанных к таймфрейму, и записывает его через window store.

Пакетное обновление запускает по задаче на тикер. У каждой задачи свой
дедлайн, и упавший тикер не отменяет соседние.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple

from core.data_models import AssetClass, MAX_WINDOW_LENGTH, PricePoint, RefreshSummary, Ticker, Timeframe
from core.exceptions import DeadlineExceededError, NotFoundError, SignalBotError, StoreError
from database.repositories.base_repository import RegistryStore
from .base_fetcher import PriceFetcher
from .fetcher_registry import FetcherRegistry
from .window_store import WindowStore

logger = logging.getLogger(__name__)


@dataclass
class RefreshBatchResult:
    """Итог обновления всех тикеров таймфрейма"""
    timeframe: Timeframe
    summaries: List[RefreshSummary] = field(default_factory=list)
    errors: List[SignalBotError] = field(default_factory=list)

    @property
    def error(self) -> Optional[SignalBotError]:
        """Первая ошибка в порядке привязок"""
        return self.errors[0] if self.errors else None

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframe": self.timeframe.value,
            "refreshed": [summary.to_dict() for summary in self.summaries],
            "errors": [error.to_dict() for error in self.errors],
        }


class PriceRefresher:
    """
    🔄 Обновление сохраненных окон цен через зарегистрированные загрузчики

    Зависимости передаются явно:
        хранилище реестра (классы тикеров и привязки к таймфреймам),
        реестр загрузчиков (загрузчик на класс активов),
        window store (атомарная замена окна).
    """

    def __init__(self, store: RegistryStore, fetchers: FetcherRegistry, window_store: WindowStore,
                 refresh_timeout: float = 30.0, read_timeout: float = 5.0):
        self.store = store
        self.fetchers = fetchers
        self.window_store = window_store
        self.refresh_timeout = refresh_timeout
        self.read_timeout = read_timeout

        self.stats = {
            "tickers_refreshed": 0,
            "refresh_errors": 0,
            "batches": 0,
        }

    async def _read(self, operation, symbol: Optional[str], timeframe: Timeframe, stage: str):
        """Чтение реестра под таймаутом чтения хранилища"""
        try:
            return await asyncio.wait_for(operation, timeout=self.read_timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(f"store read timed out after {self.read_timeout}s",
                                        ticker=symbol, timeframe=timeframe.value, stage=stage) from e
        except SignalBotError as e:
            raise e.with_context(ticker=symbol, timeframe=timeframe.value, stage=stage)

    async def _resolve(self, symbol: str, timeframe: Timeframe) -> Tuple[AssetClass, PriceFetcher]:
        asset_class = await self._read(self.store.get_asset_class(symbol), symbol, timeframe, "resolve_class")
        if asset_class is None:
            raise NotFoundError(f"{symbol} is not registered", ticker=symbol,
                                timeframe=timeframe.value, stage="resolve_class")
        return asset_class, self._fetcher_for(asset_class, symbol, timeframe)

    def _fetcher_for(self, asset_class: AssetClass, symbol: str, timeframe: Timeframe) -> PriceFetcher:
        fetcher, found = self.fetchers.get_fetcher(asset_class)
        if not found:
            raise NotFoundError(f"no fetcher for class {asset_class.value}", ticker=symbol,
                                timeframe=timeframe.value, stage="resolve_fetcher")
        return fetcher

    async def refresh_one(self, symbol: str, timeframe: Timeframe) -> RefreshSummary:
        """
        Обновить полное окно одного тикера

        Raises:
            NotFoundError: Тикер не зарегистрирован или нет загрузчика для его класса
            FetchError: Ошибка провайдера
            StoreError: Ошибка записи окна (окно не изменилось)
        """
        asset_class, fetcher = await self._resolve(symbol, timeframe)
        return await self._refresh(Ticker(symbol, asset_class), timeframe, fetcher)

    async def _refresh(self, ticker: Ticker, timeframe: Timeframe, fetcher: PriceFetcher) -> RefreshSummary:
        points = await fetcher.fetch(timeframe, ticker.symbol, MAX_WINDOW_LENGTH)
        await self.window_store.replace_window(ticker.symbol, timeframe, points)

        self.stats["tickers_refreshed"] += 1
        return RefreshSummary(
            ticker=ticker.symbol,
            asset_class=ticker.asset_class,
            timeframe=timeframe,
            refreshed_prices=points,
        )

    async def _refresh_with_deadline(self, ticker: Ticker, timeframe: Timeframe) -> RefreshSummary:
        fetcher = self._fetcher_for(ticker.asset_class, ticker.symbol, timeframe)
        try:
            return await asyncio.wait_for(self._refresh(ticker, timeframe, fetcher), timeout=self.refresh_timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(f"refresh timed out after {self.refresh_timeout}s",
                                        ticker=ticker.symbol, timeframe=timeframe.value,
                                        stage="refresh") from e

    async def refresh_by_timeframe(self, timeframe: Timeframe) -> RefreshBatchResult:
        """
        Обновить все тикеры, привязанные к таймфрейму

        Returns:
            RefreshBatchResult: сводки успешных тикеров и ошибки,
            и то и другое в порядке привязок
        """
        start_time = time.time()
        tickers = await self._read(self.store.get_tickers_by_timeframe(timeframe), None, timeframe, "load_tickers")

        logger.info("=" * 70)
        logger.info(f"🔄 Refreshing {len(tickers)} tickers for {timeframe.value}")
        logger.info("=" * 70)

        results = await asyncio.gather(
            *(self._refresh_with_deadline(ticker, timeframe) for ticker in tickers),
            return_exceptions=True
        )

        batch = RefreshBatchResult(timeframe=timeframe)
        for ticker, result in zip(tickers, results):
            if isinstance(result, RefreshSummary):
                batch.summaries.append(result)
                logger.info(f"   ✅ {ticker.symbol}: {len(result.refreshed_prices)} prices")
                continue

            if isinstance(result, SignalBotError):
                error = result.with_context(ticker=ticker.symbol, timeframe=timeframe.value)
            elif isinstance(result, Exception):
                error = StoreError(f"unexpected refresh failure: {result!r}", ticker=ticker.symbol,
                                   timeframe=timeframe.value, stage="refresh")
                error.__cause__ = result
            else:
                # CancelledError пробрасывается
                raise result

            batch.errors.append(error)
            self.stats["refresh_errors"] += 1
            logger.error(f"   ❌ {ticker.symbol}: {error}")

        self.stats["batches"] += 1
        logger.info(f"Refresh {timeframe.value} finished in {time.time() - start_time:.2f}s: "
                    f"{len(batch.summaries)} ok, {len(batch.errors)} failed")
        return batch

    async def fetch_preview(self, symbol: str, timeframe: Timeframe) -> List[PricePoint]:
        """Загрузить полное окно одного тикера без сохранения"""
        _, fetcher = await self._resolve(symbol, timeframe)
        return await fetcher.fetch(timeframe, symbol, MAX_WINDOW_LENGTH)


__all__ = ["PriceRefresher", "RefreshBatchResult"]
