"""
Registry store interface

The contract the core depends on for tickers, bindings and rolling price
windows. Write paths that must be atomic take the connection handed out by
transaction().
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Tuple

from core.data_models import AssetClass, Binding, PricePoint, Ticker, Timeframe


class RegistryStore(ABC):
    """Persistence operations for tickers, bindings and price windows"""

    # ========== TICKERS ==========

    @abstractmethod
    async def insert_ticker(self, ticker: Ticker) -> None:
        pass

    @abstractmethod
    async def get_tickers(self) -> List[Ticker]:
        pass

    @abstractmethod
    async def get_asset_class(self, symbol: str) -> Optional[AssetClass]:
        """Asset class of a registered ticker, None when unknown"""
        pass

    @abstractmethod
    async def is_ticker_registered(self, symbol: str) -> bool:
        pass

    # ========== BINDINGS ==========

    @abstractmethod
    async def insert_binding(self, binding: Binding) -> None:
        """Store a binding; an existing identical triple is left untouched"""
        pass

    @abstractmethod
    async def get_bindings_by_ticker(self, symbol: str) -> List[Binding]:
        pass

    @abstractmethod
    async def get_bindings_by_timeframe(self, timeframe: Timeframe) -> List[Binding]:
        pass

    @abstractmethod
    async def get_tickers_by_timeframe(self, timeframe: Timeframe) -> List[Ticker]:
        """Distinct tickers that have at least one binding on the timeframe"""
        pass

    @abstractmethod
    async def get_strategy_bindings_by_timeframe(self, timeframe: Timeframe) -> List[Tuple[str, str]]:
        """(ticker symbol, strategy name) pairs bound to the timeframe"""
        pass

    # ========== PRICE WINDOWS ==========

    @abstractmethod
    async def get_price_series(self, symbol: str, timeframe: Timeframe) -> List[float]:
        """Stored prices ordered by ascending timestamp"""
        pass

    @abstractmethod
    async def get_price_points(self, symbol: str, timeframe: Timeframe) -> List[PricePoint]:
        pass

    @abstractmethod
    async def delete_oldest(self, symbol: str, timeframe: Timeframe, count: int, conn: Any) -> None:
        """Delete up to `count` oldest points of the window"""
        pass

    @abstractmethod
    async def insert_points(self, symbol: str, timeframe: Timeframe,
                            points: List[PricePoint], conn: Any) -> None:
        """Insert points; a point whose timestamp already exists replaces it"""
        pass

    @abstractmethod
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Any]:
        """Open a transaction; commit on normal exit, roll back on exception"""
        yield None

    @abstractmethod
    async def ping(self) -> bool:
        pass
