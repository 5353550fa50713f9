"""
Strategy Orchestrator - оценка всех привязанных стратегий по таймфрейму

Двухуровневый параллелизм:
- по одной задаче на тикер (с собственным таймаутом)
- внутри тикера все его стратегии оцениваются параллельно

Прогон атомарен: ошибка любого тикера или стратегии проваливает весь
прогон, частичный результат не возвращается.
"""

import asyncio
import logging
import time
from typing import Dict, List, Tuple

from core.data_models import Timeframe
from core.exceptions import DeadlineExceededError, EvaluationError, SignalBotError
from database.repositories.base_repository import RegistryStore
from market_data.window_store import WindowStore
from .base_strategy import BaseStrategy, EvaluationResult
from .strategy_registry import StrategyRegistry

logger = logging.getLogger(__name__)


class StrategyOrchestrator:
    """
    🎭 Координатор оценки стратегий

    Зависимости передаются явно: хранилище привязок, окно цен и реестр
    стратегий.
    """

    def __init__(self, store: RegistryStore, window_store: WindowStore, strategies: StrategyRegistry,
                 evaluate_timeout: float = 10.0, read_timeout: float = 5.0):
        self.store = store
        self.window_store = window_store
        self.strategies = strategies
        self.evaluate_timeout = evaluate_timeout
        self.read_timeout = read_timeout

        self.stats = {
            "runs": 0,
            "failed_runs": 0,
            "tickers_evaluated": 0,
            "strategies_evaluated": 0,
        }

    async def evaluate(self, timeframe: Timeframe) -> Dict[str, List[EvaluationResult]]:
        """
        Оценить все стратегии, привязанные к таймфрейму

        Returns:
            Dict: тикер -> вердикты в порядке привязок

        Raises:
            EvaluationError: Если упал хоть один тикер или стратегия
        """
        start_time = time.time()
        self.stats["runs"] += 1

        try:
            grouped = await self._load_bindings(timeframe)
        except SignalBotError as e:
            self.stats["failed_runs"] += 1
            raise self._as_evaluation_error(e, None, timeframe, "load_bindings")

        logger.info("=" * 70)
        logger.info(f"🔍 Evaluating {timeframe.value}: {len(grouped)} tickers")
        logger.info("=" * 70)

        symbols = list(grouped)
        results = await asyncio.gather(
            *(self._evaluate_with_deadline(symbol, grouped[symbol], timeframe) for symbol in symbols),
            return_exceptions=True
        )

        evaluation: Dict[str, List[EvaluationResult]] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self.stats["failed_runs"] += 1
                error = self._as_evaluation_error(result, symbol, timeframe, "evaluate_ticker")
                logger.error(f"❌ Evaluation {timeframe.value} failed: {error}")
                raise error
            evaluation[symbol] = result

        self.stats["tickers_evaluated"] += len(evaluation)
        logger.info(f"✅ Evaluation {timeframe.value} finished in {time.time() - start_time:.2f}s")
        return evaluation

    async def _load_bindings(self, timeframe: Timeframe) -> Dict[str, List[BaseStrategy]]:
        try:
            pairs: List[Tuple[str, str]] = await asyncio.wait_for(
                self.store.get_strategy_bindings_by_timeframe(timeframe),
                timeout=self.read_timeout
            )
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(f"store read timed out after {self.read_timeout}s",
                                        timeframe=timeframe.value, stage="load_bindings") from e

        grouped: Dict[str, List[BaseStrategy]] = {}
        for symbol, strategy_name in pairs:
            try:
                strategy = self.strategies.get_by_name(strategy_name)
            except SignalBotError as e:
                raise e.with_context(ticker=symbol, timeframe=timeframe.value, stage="resolve_strategy")
            grouped.setdefault(symbol, []).append(strategy)
        return grouped

    async def _evaluate_with_deadline(self, symbol: str, strategies: List[BaseStrategy],
                                      timeframe: Timeframe) -> List[EvaluationResult]:
        try:
            return await asyncio.wait_for(self._evaluate_ticker(symbol, strategies, timeframe),
                                          timeout=self.evaluate_timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceededError(f"evaluation timed out after {self.evaluate_timeout}s",
                                        ticker=symbol, timeframe=timeframe.value,
                                        stage="evaluate_ticker") from e

    async def _evaluate_ticker(self, symbol: str, strategies: List[BaseStrategy],
                               timeframe: Timeframe) -> List[EvaluationResult]:
        prices = await self.window_store.read_series(symbol, timeframe)

        verdicts = await asyncio.gather(
            *(strategy.evaluate(prices) for strategy in strategies),
            return_exceptions=True
        )

        for strategy, verdict in zip(strategies, verdicts):
            if isinstance(verdict, Exception):
                raise EvaluationError(f"strategy {strategy.name} failed: {verdict}", ticker=symbol,
                                      timeframe=timeframe.value, stage=f"strategy:{strategy.name}") from verdict
            if isinstance(verdict, BaseException):
                raise verdict

        self.stats["strategies_evaluated"] += len(verdicts)
        logger.debug(f"{symbol}: {len(verdicts)} strategies evaluated")
        return list(verdicts)

    @staticmethod
    def _as_evaluation_error(error: Exception, symbol, timeframe: Timeframe, stage: str) -> EvaluationError:
        if isinstance(error, EvaluationError):
            return error.with_context(ticker=symbol, timeframe=timeframe.value, stage=stage)
        if isinstance(error, SignalBotError):
            wrapped = EvaluationError(error.message, ticker=error.ticker or symbol,
                                      timeframe=error.timeframe or timeframe.value,
                                      stage=error.stage or stage)
        else:
            wrapped = EvaluationError(f"unexpected evaluation failure: {error!r}", ticker=symbol,
                                      timeframe=timeframe.value, stage=stage)
        wrapped.__cause__ = error
        return wrapped


__all__ = ["StrategyOrchestrator"]
