"""
Strategy Registry - закрытый набор стратегий, доступных для привязки

Набор собирается один раз при старте и дальше только читается.
"""

import logging
from typing import Dict, Iterable, List

from core.exceptions import NotFoundError
from .base_strategy import BaseStrategy, SignalStrength, SignalType
from .fear_greed_strategy import FearGreedStrategy
from .rsi_strategy import RSIStrategy
from .sma_strategy import SMAStrategy

logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Стратегии по имени"""

    def __init__(self, strategies: Iterable[BaseStrategy]):
        self._strategies: Dict[str, BaseStrategy] = {}
        for strategy in strategies:
            if strategy.name in self._strategies:
                raise ValueError(f"Duplicate strategy name: {strategy.name}")
            self._strategies[strategy.name] = strategy

        logger.info(f"📋 StrategyRegistry: {', '.join(self._strategies)}")

    def get_by_name(self, name: str) -> BaseStrategy:
        """
        Raises:
            NotFoundError: Если стратегия не зарегистрирована
        """
        strategy = self._strategies.get(name)
        if strategy is None:
            raise NotFoundError(f"strategy {name} not found, check if strategy is registered")
        return strategy

    def __contains__(self, name: str) -> bool:
        return name in self._strategies

    def names(self) -> List[str]:
        return list(self._strategies)

    def strategies(self) -> List[BaseStrategy]:
        return list(self._strategies.values())

    async def close(self):
        for strategy in self._strategies.values():
            close = getattr(strategy, "close", None)
            if close is not None:
                await close()


def build_default_strategies(sentiment_timeout: float = 5.0) -> List[BaseStrategy]:
    """Каталог по умолчанию: пять уровней RSI, SMA200 и индекс страха/жадности"""
    return [
        RSIStrategy(20, SignalStrength.VERY_STRONG, SignalType.BUY),
        RSIStrategy(30, SignalStrength.STRONG, SignalType.BUY),
        RSIStrategy(40, SignalStrength.KEY, SignalType.BUY),
        RSIStrategy(70, SignalStrength.STRONG, SignalType.SELL),
        RSIStrategy(80, SignalStrength.VERY_STRONG, SignalType.SELL),
        SMAStrategy(200, SignalStrength.VERY_STRONG),
        FearGreedStrategy(request_timeout=sentiment_timeout),
    ]


__all__ = ["StrategyRegistry", "build_default_strategies"]
