"""
Registry Repository

PostgreSQL implementation of the registry store: tickers, strategy
bindings and the rolling price window per (ticker, timeframe).
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, List, Optional, Tuple

from asyncpg import Connection

from core.data_models import AssetClass, Binding, PricePoint, Ticker, Timeframe
from ..connections.postgres import PostgreSQLManager, QueryError
from .base_repository import RegistryStore

logger = logging.getLogger(__name__)


class RegistryRepository(RegistryStore):
    """
    Registry store backed by asyncpg

    Reads go through the manager's pooled helpers; window writes run on the
    connection of the caller's transaction.
    """

    def __init__(self, connection_manager: PostgreSQLManager, read_timeout: Optional[float] = None):
        self.db = connection_manager
        self.read_timeout = read_timeout
        self.stats = {
            "tickers_inserted": 0,
            "bindings_inserted": 0,
            "points_inserted": 0,
            "points_deleted": 0,
        }

        logger.info("RegistryRepository initialized")

    # ========== TICKERS ==========

    async def insert_ticker(self, ticker: Ticker) -> None:
        await self.db.execute(
            "INSERT INTO ticker (symbol, class) VALUES ($1, $2)",
            ticker.symbol, ticker.asset_class.value
        )
        self.stats["tickers_inserted"] += 1
        logger.info(f"Ticker {ticker.symbol} ({ticker.asset_class.value}) inserted")

    async def get_tickers(self) -> List[Ticker]:
        rows = await self.db.fetch(
            "SELECT symbol, class FROM ticker ORDER BY symbol",
            timeout=self.read_timeout
        )
        return [Ticker(row['symbol'], AssetClass(row['class'])) for row in rows]

    async def get_asset_class(self, symbol: str) -> Optional[AssetClass]:
        value = await self.db.fetchval(
            "SELECT class FROM ticker WHERE symbol = $1",
            symbol, timeout=self.read_timeout
        )
        return AssetClass(value) if value else None

    async def is_ticker_registered(self, symbol: str) -> bool:
        return await self.db.fetchval(
            "SELECT EXISTS(SELECT 1 FROM ticker WHERE symbol = $1)",
            symbol, timeout=self.read_timeout
        )

    # ========== BINDINGS ==========

    async def insert_binding(self, binding: Binding) -> None:
        await self.db.execute(
            """
            INSERT INTO binding (ticker_symbol, timeframe, strategy)
            VALUES ($1, $2, $3)
            ON CONFLICT (ticker_symbol, timeframe, strategy) DO NOTHING
            """,
            binding.ticker_symbol, binding.timeframe.value, binding.strategy
        )
        self.stats["bindings_inserted"] += 1

    async def get_bindings_by_ticker(self, symbol: str) -> List[Binding]:
        rows = await self.db.fetch(
            """
            SELECT ticker_symbol, timeframe, strategy FROM binding
            WHERE ticker_symbol = $1
            ORDER BY created_at, timeframe, strategy
            """,
            symbol, timeout=self.read_timeout
        )
        return [self._row_to_binding(row) for row in rows]

    async def get_bindings_by_timeframe(self, timeframe: Timeframe) -> List[Binding]:
        rows = await self.db.fetch(
            """
            SELECT ticker_symbol, timeframe, strategy FROM binding
            WHERE timeframe = $1
            ORDER BY created_at, ticker_symbol, strategy
            """,
            timeframe.value, timeout=self.read_timeout
        )
        return [self._row_to_binding(row) for row in rows]

    async def get_tickers_by_timeframe(self, timeframe: Timeframe) -> List[Ticker]:
        # Ordered by each ticker's first binding so batch results are deterministic
        rows = await self.db.fetch(
            """
            SELECT t.symbol, t.class, MIN(b.created_at) AS first_bound
            FROM binding b
            JOIN ticker t ON t.symbol = b.ticker_symbol
            WHERE b.timeframe = $1
            GROUP BY t.symbol, t.class
            ORDER BY first_bound, t.symbol
            """,
            timeframe.value, timeout=self.read_timeout
        )
        return [Ticker(row['symbol'], AssetClass(row['class'])) for row in rows]

    async def get_strategy_bindings_by_timeframe(self, timeframe: Timeframe) -> List[Tuple[str, str]]:
        bindings = await self.get_bindings_by_timeframe(timeframe)
        return [(binding.ticker_symbol, binding.strategy) for binding in bindings]

    @staticmethod
    def _row_to_binding(row) -> Binding:
        return Binding(
            ticker_symbol=row['ticker_symbol'],
            timeframe=Timeframe(row['timeframe']),
            strategy=row['strategy'],
        )

    # ========== PRICE WINDOWS ==========

    async def get_price_series(self, symbol: str, timeframe: Timeframe) -> List[float]:
        points = await self.get_price_points(symbol, timeframe)
        return [point.price for point in points]

    async def get_price_points(self, symbol: str, timeframe: Timeframe) -> List[PricePoint]:
        rows = await self.db.fetch(
            """
            SELECT time, price FROM price_point
            WHERE ticker_symbol = $1 AND timeframe = $2
            ORDER BY time ASC
            """,
            symbol, timeframe.value, timeout=self.read_timeout
        )
        return [PricePoint(time=row['time'], price=float(row['price'])) for row in rows]

    async def delete_oldest(self, symbol: str, timeframe: Timeframe, count: int, conn: Connection) -> None:
        if count <= 0:
            return
        try:
            result = await conn.execute(
                """
                DELETE FROM price_point
                WHERE (ticker_symbol, timeframe, time) IN (
                    SELECT ticker_symbol, timeframe, time FROM price_point
                    WHERE ticker_symbol = $1 AND timeframe = $2
                    ORDER BY time ASC
                    LIMIT $3
                )
                """,
                symbol, timeframe.value, count
            )
        except Exception as e:
            raise QueryError(f"Failed to delete oldest prices: {e}", ticker=symbol,
                             timeframe=timeframe.value, stage="delete_oldest") from e

        # asyncpg returns the command tag, e.g. "DELETE 12"
        deleted = int(result.split()[-1]) if result else 0
        self.stats["points_deleted"] += deleted
        logger.debug(f"Deleted {deleted} oldest {timeframe.value} prices of {symbol}")

    async def insert_points(self, symbol: str, timeframe: Timeframe,
                            points: List[PricePoint], conn: Connection) -> None:
        if not points:
            return
        try:
            await conn.executemany(
                """
                INSERT INTO price_point (ticker_symbol, timeframe, time, price)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (ticker_symbol, timeframe, time)
                DO UPDATE SET price = EXCLUDED.price
                """,
                [(symbol, timeframe.value, point.time, Decimal(str(point.price))) for point in points]
            )
        except Exception as e:
            raise QueryError(f"Failed to insert prices: {e}", ticker=symbol,
                             timeframe=timeframe.value, stage="insert_points") from e

        self.stats["points_inserted"] += len(points)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Connection]:
        async with self.db.get_transaction() as conn:
            yield conn

    async def ping(self) -> bool:
        health = await self.db.get_health_status()
        return health["healthy"]


__all__ = ["RegistryRepository"]
