import logging
from typing import List

from .base_strategy import BaseStrategy, EvaluationResult, SignalStrength

logger = logging.getLogger(__name__)

# Ширина коридора вокруг SMA, %
TOLERANCE_PERCENTAGE = 10.0


class SMAStrategy(BaseStrategy):
    """Последняя цена внутри коридора ±10% от простой скользящей средней"""

    def __init__(self, length: int, strength: SignalStrength):
        self.length = length
        self.strength = strength

    @property
    def name(self) -> str:
        return f"sma{self.length}"

    async def evaluate(self, prices: List[float]) -> EvaluationResult:
        if len(prices) < self.length:
            return self._result(False, f"lack {self.length} data")

        sma = sum(prices[-self.length:]) / self.length
        latest_price = prices[-1]

        upper_zone = sma * (100 + TOLERANCE_PERCENTAGE) / 100
        lower_zone = sma * (100 - TOLERANCE_PERCENTAGE) / 100
        in_zone = lower_zone <= latest_price <= upper_zone

        if not in_zone:
            return self._result(False, f"Price not at {self.name} levels({sma:.2f})")
        return self._result(True, f"{self.strength} zone! Price at {self.name} levels({sma:.2f})")


__all__ = ["SMAStrategy", "TOLERANCE_PERCENTAGE"]
