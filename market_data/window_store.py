"""
Window Store - скользящее окно цен

Хранит не больше MAX_WINDOW_LENGTH цен на пару (тикер, таймфрейм).
Обновление на K точек удаляет K самых старых и вставляет K новых в одной
транзакции, так что читатель никогда не видит наполовину замененное окно.
"""

import asyncio
import logging
from typing import List

from core.data_models import MAX_WINDOW_LENGTH, PricePoint, Timeframe
from core.exceptions import DeadlineExceededError, SignalBotError, StoreError, ValidationError
from database.repositories.base_repository import RegistryStore

logger = logging.getLogger(__name__)


class WindowStore:
    """🪟 Атомарная запись окна и упорядоченное чтение поверх хранилища реестра"""

    def __init__(self, store: RegistryStore, write_timeout: float = 15.0, read_timeout: float = 5.0):
        self.store = store
        self.write_timeout = write_timeout
        self.read_timeout = read_timeout

    async def replace_window(self, symbol: str, timeframe: Timeframe, points: List[PricePoint]) -> None:
        """
        Удалить len(points) самых старых цен и вставить `points`

        Args:
            symbol: Символ тикера
            timeframe: Таймфрейм окна
            points: Новые цены, от старых к новым

        Raises:
            ValidationError: Точек больше, чем вмещает окно
            StoreError: Любой из шагов упал; окно не изменилось
        """
        if len(points) > MAX_WINDOW_LENGTH:
            raise ValidationError(
                f"cannot store {len(points)} prices, maximum length is {MAX_WINDOW_LENGTH}",
                ticker=symbol, timeframe=timeframe.value, stage="replace_window",
            )

        try:
            await asyncio.wait_for(self._replace(symbol, timeframe, points), timeout=self.write_timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(f"window write timed out after {self.write_timeout}s",
                                        ticker=symbol, timeframe=timeframe.value, stage="replace_window") from e

        logger.debug(f"Replaced {len(points)} {timeframe.value} prices of {symbol}")

    async def _replace(self, symbol: str, timeframe: Timeframe, points: List[PricePoint]):
        async with self.store.transaction() as conn:
            await self._step("delete_oldest", symbol, timeframe,
                             self.store.delete_oldest(symbol, timeframe, len(points), conn))
            await self._step("insert_points", symbol, timeframe,
                             self.store.insert_points(symbol, timeframe, points, conn))

    @staticmethod
    async def _step(stage: str, symbol: str, timeframe: Timeframe, operation):
        try:
            await operation
        except SignalBotError as e:
            if isinstance(e, StoreError):
                raise e.with_context(ticker=symbol, timeframe=timeframe.value, stage=stage)
            raise StoreError(e.message, ticker=symbol, timeframe=timeframe.value, stage=stage) from e
        except Exception as e:
            raise StoreError(f"{stage} failed: {e}", ticker=symbol,
                             timeframe=timeframe.value, stage=stage) from e

    async def read_series(self, symbol: str, timeframe: Timeframe) -> List[float]:
        """Сохраненные цены, от старых к новым"""
        try:
            return await asyncio.wait_for(self.store.get_price_series(symbol, timeframe),
                                          timeout=self.read_timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(f"window read timed out after {self.read_timeout}s",
                                        ticker=symbol, timeframe=timeframe.value, stage="read_series") from e
        except SignalBotError as e:
            raise e.with_context(ticker=symbol, timeframe=timeframe.value, stage="read_series")
        except Exception as e:
            raise StoreError(f"window read failed: {e}", ticker=symbol,
                             timeframe=timeframe.value, stage="read_series") from e


__all__ = ["WindowStore"]
