"""
Модуль стратегий

Архитектура:
- BaseStrategy: абстрактный базовый класс, вердикт EvaluationResult
- RSIStrategy: уровень индекса относительной силы
- SMAStrategy: цена в коридоре простой скользящей средней
- FearGreedStrategy: внешний индекс страха и жадности
- StrategyRegistry: закрытый набор стратегий по имени
- StrategyOrchestrator: параллельная оценка привязок таймфрейма
"""

import logging

from .base_strategy import BaseStrategy, EvaluationResult, SignalType, SignalStrength
from .rsi_strategy import RSIStrategy, calculate_rsi
from .sma_strategy import SMAStrategy
from .fear_greed_strategy import FearGreedStrategy
from .strategy_registry import StrategyRegistry, build_default_strategies
from .strategy_orchestrator import StrategyOrchestrator

logger = logging.getLogger(__name__)

__all__ = [
    "BaseStrategy",
    "EvaluationResult",
    "SignalType",
    "SignalStrength",
    "RSIStrategy",
    "calculate_rsi",
    "SMAStrategy",
    "FearGreedStrategy",
    "StrategyRegistry",
    "build_default_strategies",
    "StrategyOrchestrator",
]
