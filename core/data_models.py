"""
Data Models - модели данных сигнального конвейера

Общие структуры для загрузчиков, хранилища окна, оркестраторов
и HTTP-слоя:
- Перечисления таймфреймов и классов активов (проверяемые метки)
- Точки цен и сводки обновления
- Зарегистрированные тикеры и привязки стратегий
"""

import logging
from datetime import datetime
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# Ёмкость скользящего окна на пару (тикер, таймфрейм)
MAX_WINDOW_LENGTH = 300


class Timeframe(Enum):
    """Поддерживаемые таймфреймы"""
    HOUR_4 = "H4"
    DAY_1 = "D1"
    WEEK_1 = "W1"

    @classmethod
    def values(cls) -> List[str]:
        """Получить все метки таймфреймов"""
        return [tf.value for tf in cls]

    @classmethod
    def parse(cls, label: str) -> Optional["Timeframe"]:
        """Метка в Timeframe, None для неизвестной"""
        try:
            return cls(label)
        except ValueError:
            return None


class AssetClass(Enum):
    """Классы активов тикера"""
    STOCK = "stock"
    CRYPTO = "crypto"

    @classmethod
    def values(cls) -> List[str]:
        return [ac.value for ac in cls]

    @classmethod
    def parse(cls, label: str) -> Optional["AssetClass"]:
        try:
            return cls(label)
        except ValueError:
            return None


@dataclass(frozen=True)
class PricePoint:
    """Одна точка (время, цена)"""
    time: datetime
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "price": self.price,
        }


@dataclass(frozen=True)
class Ticker:
    """Зарегистрированный инструмент"""
    symbol: str
    asset_class: AssetClass

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "class": self.asset_class.value,
        }


@dataclass(frozen=True)
class Binding:
    """Привязка стратегии к тикеру на таймфрейме"""
    ticker_symbol: str
    timeframe: Timeframe
    strategy: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tickerSymbol": self.ticker_symbol,
            "timeframe": self.timeframe.value,
            "strategy": self.strategy,
        }


@dataclass
class RefreshSummary:
    """Итог успешного обновления одного тикера"""
    ticker: str
    asset_class: AssetClass
    timeframe: Timeframe
    refreshed_prices: List[PricePoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticker": self.ticker,
            "class": self.asset_class.value,
            "timeframe": self.timeframe.value,
            "refreshedPrices": [point.to_dict() for point in self.refreshed_prices],
        }


__all__ = [
    "MAX_WINDOW_LENGTH",
    "Timeframe",
    "AssetClass",
    "PricePoint",
    "Ticker",
    "Binding",
    "RefreshSummary",
]
