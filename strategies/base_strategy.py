import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)


class SignalStrength(Enum):
    """Сила сигнала (значение совпадает с текстом в отчёте)"""
    KEY = "Key"
    VERY_WEAK = "Very Weak"
    WEAK = "Weak"
    NEUTRAL = "Neutral"
    STRONG = "Strong"
    VERY_STRONG = "Very Strong"

    def __str__(self):
        return self.value


class SignalType(Enum):
    """Тип сигнала"""
    SELL = "Sell"
    BUY = "Buy"
    NOTIFY = "Notify"

    def __str__(self):
        return self.value


@dataclass
class EvaluationResult:
    """Вердикт одной стратегии по одному тикеру"""
    strategy_name: str
    is_fulfilled: bool
    message: str
    signal_type: Optional[SignalType] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy_name,
            "isFulfilled": self.is_fulfilled,
            "evaluationMessage": self.message,
        }


class BaseStrategy(ABC):
    """
    Базовый класс стратегии

    Стратегия получает ряд цен (от старых к новым) и возвращает
    EvaluationResult. Реализации не хранят состояние между вызовами,
    поэтому один экземпляр безопасно вызывать конкурентно.
    """

    # None = доступна для любого тикера
    whitelisted_symbols: Optional[List[str]] = None

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def evaluate(self, prices: List[float]) -> EvaluationResult:
        pass

    def allows_symbol(self, symbol: str) -> bool:
        return self.whitelisted_symbols is None or symbol in self.whitelisted_symbols

    def _result(self, is_fulfilled: bool, message: str,
                signal_type: Optional[SignalType] = None) -> EvaluationResult:
        return EvaluationResult(
            strategy_name=self.name,
            is_fulfilled=is_fulfilled,
            message=message,
            signal_type=signal_type,
        )

    def __str__(self):
        return self.name

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name})"


__all__ = [
    "SignalStrength",
    "SignalType",
    "EvaluationResult",
    "BaseStrategy",
]
