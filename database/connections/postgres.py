"""
PostgreSQL access for the registry store

One asyncpg pool per process. Repositories borrow a connection per call
(or per transaction) and every failure surfaces as a StoreError subclass
tagged with the stage that failed.
"""

import asyncio
import hashlib
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg
from asyncpg import Connection, Pool, Record

from core.exceptions import StoreError
from ..config import DatabaseConfig

logger = logging.getLogger(__name__)


class DatabaseConnectionError(StoreError):
    """Pool not available or a connection could not be acquired"""
    pass


class QueryError(StoreError):
    """A statement failed or timed out"""
    pass


class MigrationError(StoreError):
    """A schema migration could not be applied"""
    pass


class PostgreSQLManager:
    """
    Owner of the asyncpg pool

    Created once at startup by initialize_database() and closed with the
    application context.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.pool: Optional[Pool] = None
        self.is_initialized = False

        self.stats = {
            "queries": 0,
            "failed_queries": 0,
            "slow_queries": 0,
            "migrations": 0,
        }

        self.migrations_path = Path(__file__).resolve().parent.parent / "migrations"
        self.applied_migrations: List[str] = []

    async def initialize(self) -> bool:
        """
        Open the pool, check it answers and create the migrations table

        Raises:
            DatabaseConnectionError: Invalid settings or unreachable server
        """
        try:
            self.config.validate()
            logger.info(f"🔌 Connecting to PostgreSQL at {self.config.get_host()} "
                        f"(pool {self.config.min_pool_size}..{self.config.max_pool_size})")
            self.pool = await asyncpg.create_pool(self.config.get_connection_string(),
                                                  **self.config.get_pool_kwargs())
            await self.fetchval("SELECT 1")
        except Exception as e:
            logger.error(f"❌ PostgreSQL unavailable: {e}")
            self.is_initialized = False
            raise DatabaseConnectionError(f"database initialization failed: {e}", stage="initialize") from e

        await self._ensure_migrations_table()
        self.is_initialized = True
        logger.info("✅ PostgreSQL ready")
        return True

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[Connection]:
        """Borrow a pooled connection for the duration of the block"""
        if not self.pool:
            raise DatabaseConnectionError("database pool not initialized", stage="acquire")

        try:
            connection = await self.pool.acquire(timeout=self.config.connection_timeout)
        except Exception as e:
            logger.error(f"Cannot acquire connection: {e}")
            raise DatabaseConnectionError(f"cannot acquire connection: {e}", stage="acquire") from e

        try:
            yield connection
        finally:
            await self.pool.release(connection)

    @asynccontextmanager
    async def get_transaction(self) -> AsyncIterator[Connection]:
        """
        Borrow a connection inside a transaction

        Commits when the block exits normally, rolls back on exception.
        """
        async with self.get_connection() as conn:
            async with conn.transaction():
                yield conn

    async def _run(self, method: str, query: str, *args, timeout: Optional[float] = None) -> Any:
        started = time.monotonic()
        try:
            async with self.get_connection() as conn:
                call = getattr(conn, method)(query, *args)
                result = await asyncio.wait_for(call, timeout=timeout) if timeout else await call
        except DatabaseConnectionError:
            self.stats["failed_queries"] += 1
            raise
        except Exception as e:
            self.stats["failed_queries"] += 1
            logger.error(f"{method} failed after {time.monotonic() - started:.3f}s: {e} | {query[:200]}")
            raise QueryError(f"{method} failed: {e}", stage=method) from e

        self._observe(time.monotonic() - started, query)
        return result

    async def execute(self, query: str, *args, timeout: Optional[float] = None) -> str:
        return await self._run("execute", query, *args, timeout=timeout)

    async def fetch(self, query: str, *args, timeout: Optional[float] = None) -> List[Record]:
        return await self._run("fetch", query, *args, timeout=timeout)

    async def fetchrow(self, query: str, *args, timeout: Optional[float] = None) -> Optional[Record]:
        return await self._run("fetchrow", query, *args, timeout=timeout)

    async def fetchval(self, query: str, *args, timeout: Optional[float] = None) -> Any:
        return await self._run("fetchval", query, *args, timeout=timeout)

    def _observe(self, elapsed: float, query: str):
        self.stats["queries"] += 1
        if elapsed > self.config.slow_query_threshold:
            self.stats["slow_queries"] += 1
            logger.warning(f"🐢 Slow query ({elapsed:.3f}s): {query[:100]}")
        elif self.config.enable_query_logging:
            logger.debug(f"Query in {elapsed:.3f}s: {query[:100]}")

    async def _ensure_migrations_table(self):
        table = self.config.migrations_table
        try:
            await self.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                " name TEXT PRIMARY KEY,"
                " checksum CHAR(16) NOT NULL,"
                " duration_ms INTEGER NOT NULL,"
                " applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW())"
            )
        except QueryError as e:
            raise MigrationError(f"cannot create {table}: {e.message}", stage="migrations") from e

    @staticmethod
    def _checksum(sql: str) -> str:
        return hashlib.sha256(sql.encode()).hexdigest()[:16]

    async def run_migrations(self) -> int:
        """
        Apply pending migrations/*.sql files in filename order, each in its
        own transaction

        A file whose content changed after it was applied is reported and
        left alone.

        Returns:
            int: Number of migrations applied by this call
        """
        if not self.config.auto_migrate:
            logger.info("Auto-migration disabled, skipping")
            return 0

        rows = await self.fetch(f"SELECT name, checksum FROM {self.config.migrations_table}")
        recorded = {row["name"]: row["checksum"] for row in rows}
        self.applied_migrations = sorted(recorded)

        applied_now = 0
        for path in sorted(self.migrations_path.glob("*.sql")):
            sql = path.read_text(encoding="utf-8")
            checksum = self._checksum(sql)

            if path.stem in recorded:
                if recorded[path.stem].strip() != checksum:
                    logger.warning(f"⚠️ Migration {path.stem} changed after it was applied")
                continue

            await self._apply_migration(path.stem, sql, checksum)
            self.applied_migrations.append(path.stem)
            self.stats["migrations"] += 1
            applied_now += 1

        logger.info(f"Migrations: {applied_now} applied, {len(self.applied_migrations)} total")
        return applied_now

    async def _apply_migration(self, name: str, sql: str, checksum: str):
        started = time.monotonic()
        logger.info(f"📜 Applying migration {name}")
        try:
            async with self.get_transaction() as conn:
                await conn.execute(sql)
                await conn.execute(
                    f"INSERT INTO {self.config.migrations_table} (name, checksum, duration_ms) VALUES ($1, $2, $3)",
                    name, checksum, int((time.monotonic() - started) * 1000)
                )
        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(f"❌ Migration {name} failed: {e}")
            raise MigrationError(f"migration {name} failed: {e}", stage="migrations") from e

    async def get_health_status(self) -> Dict[str, Any]:
        """Store connectivity for the /health endpoint (JSON-serializable)"""
        status: Dict[str, Any] = {
            "healthy": False,
            "host": self.config.get_host(),
            "migrations": len(self.applied_migrations),
            "queries": self.stats["queries"],
            "failed_queries": self.stats["failed_queries"],
        }
        if self.pool:
            status["pool"] = f"{self.pool.get_size() - self.pool.get_idle_size()} busy / {self.pool.get_size()} open"

        started = time.monotonic()
        try:
            await self.fetchval("SELECT 1", timeout=self.config.connection_timeout)
        except StoreError as e:
            status["error"] = e.message
            logger.error(f"Health check failed: {e}")
            return status

        status["healthy"] = True
        status["latency_ms"] = round((time.monotonic() - started) * 1000, 2)
        return status

    async def close(self):
        """Close the pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.is_initialized = False
            logger.info(f"🔒 PostgreSQL pool closed after {self.stats['queries']} queries "
                        f"({self.stats['failed_queries']} failed)")

    def __repr__(self) -> str:
        state = "open" if self.pool else "closed"
        return f"PostgreSQLManager({self.config.get_host()}/{self.config.database}, pool {state})"


__all__ = [
    "PostgreSQLManager",
    "DatabaseConnectionError",
    "QueryError",
    "MigrationError",
]
