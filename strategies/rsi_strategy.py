"""
RSI Strategy - сигнал по уровню индекса относительной силы

Сглаживание Уайлдера: средние прирост/убыток инициализируются по первым
`period` изменениям цены, затем обновляются на каждом следующем изменении.
"""

import logging
from typing import List

from core.data_models import MAX_WINDOW_LENGTH
from .base_strategy import BaseStrategy, EvaluationResult, SignalStrength, SignalType

logger = logging.getLogger(__name__)

RSI_PERIOD = 14
ZONE_TOLERANCE = 2.0


def calculate_rsi(prices: List[float], period: int = RSI_PERIOD) -> float:
    """
    RSI последней точки ряда

    Args:
        prices: Цены от старых к новым
        period: Период сглаживания

    Returns:
        float: 0..100; 100 если были только приросты, 50 для плоского ряда
    """
    deltas = [current - previous for previous, current in zip(prices, prices[1:])]
    if not deltas:
        return 50.0

    seed = deltas[:period]
    average_gain = sum(delta for delta in seed if delta > 0) / period
    average_loss = sum(-delta for delta in seed if delta < 0) / period

    for delta in deltas[period:]:
        gain = delta if delta > 0 else 0.0
        loss = -delta if delta < 0 else 0.0
        average_gain = (average_gain * (period - 1) + gain) / period
        average_loss = (average_loss * (period - 1) + loss) / period

    if average_loss == 0:
        return 100.0 if average_gain > 0 else 50.0

    rs = average_gain / average_loss
    return 100.0 - (100.0 / (1.0 + rs))


class RSIStrategy(BaseStrategy):
    """
    📈 RSI на заданном уровне

    Sell выполняется при RSI >= level - 2, Buy при RSI <= level + 2,
    Notify при RSI в пределах level ± 2.
    """

    def __init__(self, level: float, strength: SignalStrength, signal_type: SignalType,
                 period: int = RSI_PERIOD):
        self.level = level
        self.strength = strength
        self.signal_type = signal_type
        self.period = period

    @property
    def name(self) -> str:
        return f"rsi{self.level:.0f}"

    async def evaluate(self, prices: List[float]) -> EvaluationResult:
        if len(prices) != MAX_WINDOW_LENGTH:
            logger.warning(f"⚠️ {self.name}: expected {MAX_WINDOW_LENGTH} prices, got {len(prices)}")
        if len(prices) < self.period + 1:
            logger.warning(f"⚠️ {self.name}: fewer than {self.period + 1} prices, RSI is approximate")

        rsi = calculate_rsi(prices, self.period)
        is_fulfilled = self._reached_level(rsi)
        return self._result(is_fulfilled, self._message(rsi, is_fulfilled), self.signal_type)

    def _reached_level(self, rsi: float) -> bool:
        upper_zone = self.level + ZONE_TOLERANCE
        lower_zone = self.level - ZONE_TOLERANCE

        if self.signal_type == SignalType.SELL:
            return rsi >= lower_zone
        if self.signal_type == SignalType.BUY:
            return rsi <= upper_zone
        return lower_zone <= rsi <= upper_zone

    def _message(self, rsi: float, is_fulfilled: bool) -> str:
        if not is_fulfilled:
            return f"RSI of {rsi:.2f} not at {self.name} levels"
        if self.signal_type == SignalType.NOTIFY:
            return f"RSI of {rsi:.2f} reached {self.name} levels"
        return f"{self.strength} {self.signal_type}! RSI of {rsi:.2f} in {self.name} zone"


__all__ = ["RSIStrategy", "calculate_rsi", "RSI_PERIOD", "ZONE_TOLERANCE"]
