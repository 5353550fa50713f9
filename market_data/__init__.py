"""
Market data module

Загрузчики цен для каждого класса активов, хранилище скользящего окна и
оркестрация обновления поверх них.

Архитектура:
- PriceFetcher: базовый класс с общей aiohttp-обвязкой
- StockDataFetcher: исторические данные RapidAPI (акции)
- CryptoDataFetcher: TokenInsight + CoinAPI (крипто)
- FetcherRegistry: поиск загрузчика по классу активов
- WindowStore: атомарная замена окна (удаление старых и вставка новых)
- PriceRefresher: обновление одного тикера и всего таймфрейма
"""

from .base_fetcher import PriceFetcher, walk_backward
from .stock_fetcher import StockDataFetcher
from .crypto_fetcher import CryptoDataFetcher
from .fetcher_registry import FetcherRegistry
from .window_store import WindowStore
from .price_refresher import PriceRefresher, RefreshBatchResult

__all__ = [
    "PriceFetcher",
    "walk_backward",
    "StockDataFetcher",
    "CryptoDataFetcher",
    "FetcherRegistry",
    "WindowStore",
    "PriceRefresher",
    "RefreshBatchResult",
]
