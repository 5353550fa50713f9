"""
Registration Service - регистрация тикеров и привязок стратегий

Запросы проверяются по закрытым множествам (классы активов, таймфреймы,
стратегии и белые списки стратегий) до любой записи.
"""

import asyncio
import logging
from typing import List, Optional

from core.data_models import AssetClass, Binding, Ticker, Timeframe
from core.exceptions import DeadlineExceededError, NotFoundError, ValidationError
from database.repositories.base_repository import RegistryStore
from strategies.strategy_registry import StrategyRegistry

logger = logging.getLogger(__name__)


class RegistrationService:
    """📝 Правила регистрации тикеров и привязок"""

    def __init__(self, store: RegistryStore, strategies: StrategyRegistry,
                 write_timeout: float = 15.0, read_timeout: float = 5.0):
        self.store = store
        self.strategies = strategies
        self.write_timeout = write_timeout
        self.read_timeout = read_timeout

    async def _with_timeout(self, operation, timeout: float, stage: str, ticker: Optional[str] = None):
        try:
            return await asyncio.wait_for(operation, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(f"{stage} timed out after {timeout}s", ticker=ticker, stage=stage) from e

    async def register_ticker(self, symbol: Optional[str], asset_class: Optional[str]) -> Ticker:
        """
        Зарегистрировать тикер; символ сохраняется в верхнем регистре

        Raises:
            ValidationError: Нет символа, неизвестный класс или тикер уже зарегистрирован
        """
        if not symbol or not isinstance(symbol, str) or not symbol.strip():
            raise ValidationError("symbol is required", stage="register_ticker")

        parsed_class = AssetClass.parse(asset_class) if isinstance(asset_class, str) else None
        if parsed_class is None:
            raise ValidationError(f"valid classes: {AssetClass.values()}", stage="register_ticker")

        ticker = Ticker(symbol.strip().upper(), parsed_class)

        if await self._with_timeout(self.store.is_ticker_registered(ticker.symbol), self.read_timeout,
                                    "register_ticker", ticker.symbol):
            raise ValidationError(f"{ticker.symbol} is already registered",
                                  ticker=ticker.symbol, stage="register_ticker")

        await self._with_timeout(self.store.insert_ticker(ticker), self.write_timeout,
                                 "register_ticker", ticker.symbol)
        logger.info(f"✅ Ticker {ticker.symbol} of class {parsed_class.value} registered")
        return ticker

    async def register_binding(self, ticker_symbol: Optional[str], timeframe: Optional[str],
                               strategy_name: Optional[str]) -> Binding:
        """
        Привязать стратегию к тикеру на таймфрейме

        Raises:
            ValidationError: Неизвестная стратегия или таймфрейм, символ вне
                белого списка стратегии
            NotFoundError: Тикер не зарегистрирован
        """
        if not isinstance(strategy_name, str) or strategy_name not in self.strategies:
            raise ValidationError(f"valid strategies: {self.strategies.names()}", stage="register_binding")
        strategy = self.strategies.get_by_name(strategy_name)

        parsed_timeframe = Timeframe.parse(timeframe) if isinstance(timeframe, str) else None
        if parsed_timeframe is None:
            raise ValidationError(f"valid timeframes: {Timeframe.values()}", stage="register_binding")

        if not ticker_symbol or not isinstance(ticker_symbol, str):
            raise ValidationError("tickerSymbol is required", stage="register_binding")
        symbol = ticker_symbol.strip().upper()

        if not strategy.allows_symbol(symbol):
            raise ValidationError(
                f"valid symbols for strategy {strategy.name}: {strategy.whitelisted_symbols}",
                ticker=symbol, stage="register_binding",
            )

        if not await self._with_timeout(self.store.is_ticker_registered(symbol), self.read_timeout,
                                        "register_binding", symbol):
            raise NotFoundError(f"{symbol} is not registered", ticker=symbol, stage="register_binding")

        binding = Binding(ticker_symbol=symbol, timeframe=parsed_timeframe, strategy=strategy.name)
        await self._with_timeout(self.store.insert_binding(binding), self.write_timeout,
                                 "register_binding", symbol)
        logger.info(f"✅ Binding {symbol}/{parsed_timeframe.value}/{strategy.name} registered")
        return binding

    async def list_tickers(self) -> List[Ticker]:
        return await self._with_timeout(self.store.get_tickers(), self.read_timeout, "list_tickers")

    async def bindings_for_ticker(self, symbol: str) -> List[Binding]:
        return await self._with_timeout(self.store.get_bindings_by_ticker(symbol.upper()),
                                        self.read_timeout, "list_bindings", symbol)

    async def bindings_for_timeframe(self, timeframe: Timeframe) -> List[Binding]:
        return await self._with_timeout(self.store.get_bindings_by_timeframe(timeframe),
                                        self.read_timeout, "list_bindings")


__all__ = ["RegistrationService"]
