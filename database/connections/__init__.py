"""
Database Connections Module

asyncpg-based connection management for the registry store.
"""

from .postgres import (
    PostgreSQLManager,
    DatabaseConnectionError,
    QueryError,
    MigrationError
)

__all__ = [
    "PostgreSQLManager",
    "DatabaseConnectionError",
    "QueryError",
    "MigrationError"
]
