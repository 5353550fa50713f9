"""
Database module for the signal bot

PostgreSQL persistence for registered tickers, strategy bindings and the
rolling price window of each (ticker, timeframe).

Architecture:
- asyncpg connection pool owned by PostgreSQLManager
- Raw SQL repositories behind the RegistryStore interface
- SQL-file migrations applied at startup
"""

import logging
from typing import Optional

from .config import DatabaseConfig
from .connections.postgres import PostgreSQLManager, DatabaseConnectionError, QueryError, MigrationError
from .repositories import RegistryStore, RegistryRepository

logger = logging.getLogger(__name__)


async def initialize_database(config: Optional[DatabaseConfig] = None) -> PostgreSQLManager:
    """
    Create a connected manager and apply pending migrations

    Args:
        config: Database configuration (defaults to environment config)

    Returns:
        PostgreSQLManager: Initialized manager, owned by the caller

    Raises:
        DatabaseConnectionError: If the database is unreachable
        MigrationError: If a migration fails
    """
    if config is None:
        config = DatabaseConfig.from_environment()

    logger.info(f"Initializing database connection to {config.get_host()}")

    manager = PostgreSQLManager(config)
    await manager.initialize()

    logger.info("Running database migrations...")
    await manager.run_migrations()

    logger.info("Database initialization completed successfully")
    return manager


__all__ = [
    "DatabaseConfig",
    "PostgreSQLManager",
    "DatabaseConnectionError",
    "QueryError",
    "MigrationError",
    "RegistryStore",
    "RegistryRepository",
    "initialize_database",
]
