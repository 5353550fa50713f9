"""Реестр загрузчиков цен по классу активов"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from core.data_models import AssetClass
from .base_fetcher import PriceFetcher

logger = logging.getLogger(__name__)


class FetcherRegistry:
    """
    🗂️ Загрузчики, индексированные по обслуживаемому классу активов

    Собирается один раз при старте, дальше только читается.
    """

    def __init__(self, fetchers: Iterable[PriceFetcher]):
        self._fetchers: Dict[AssetClass, PriceFetcher] = {}
        for fetcher in fetchers:
            if fetcher.asset_class in self._fetchers:
                raise ValueError(f"Duplicate fetcher for class {fetcher.asset_class.value}")
            self._fetchers[fetcher.asset_class] = fetcher

        logger.info(f"FetcherRegistry initialized: {[ac.value for ac in self._fetchers]}")

    def get_fetcher(self, asset_class: AssetClass) -> Tuple[Optional[PriceFetcher], bool]:
        fetcher = self._fetchers.get(asset_class)
        return fetcher, fetcher is not None

    def fetchers(self) -> List[PriceFetcher]:
        return list(self._fetchers.values())

    async def close(self):
        """Закрыть HTTP-сессии всех загрузчиков"""
        for fetcher in self._fetchers.values():
            await fetcher.close()


__all__ = ["FetcherRegistry"]
