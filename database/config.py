"""
PostgreSQL settings for the registry store

Tickers, strategy bindings and the rolling price windows all live in one
database reached through an asyncpg pool.
"""

import os
import logging
from typing import Any, Callable, Dict, List, Tuple
from urllib.parse import urlparse, parse_qs
from dataclasses import dataclass

logger = logging.getLogger(__name__)

APPLICATION_NAME = "signal_bot"

SSL_MODES = ("disable", "allow", "prefer", "require", "verify-ca", "verify-full")


def _flag(value: str) -> bool:
    return value.lower() == "true"


# (environment variable, field, parser) applied after DATABASE_URL / DB_* resolution
POOL_OVERRIDES: List[Tuple[str, str, Callable[[str], Any]]] = [
    ("DB_MIN_POOL_SIZE", "min_pool_size", int),
    ("DB_MAX_POOL_SIZE", "max_pool_size", int),
    ("DB_QUERY_TIMEOUT", "query_timeout", float),
    ("DB_CONNECTION_TIMEOUT", "connection_timeout", float),
    ("DB_SLOW_QUERY_THRESHOLD", "slow_query_threshold", float),
    ("DB_SSL_MODE", "ssl_mode", str),
    ("DB_AUTO_MIGRATE", "auto_migrate", _flag),
    ("DB_ENABLE_QUERY_LOGGING", "enable_query_logging", _flag),
]

# Used only when DATABASE_URL is absent
LOCATION_VARIABLES: List[Tuple[str, str, Callable[[str], Any]]] = [
    ("DB_HOST", "host", str),
    ("DB_PORT", "port", int),
    ("DB_NAME", "database", str),
    ("DB_USER", "username", str),
    ("DB_PASSWORD", "password", str),
]


@dataclass
class DatabaseConfig:
    """Connection, pool and migration settings"""

    host: str = "localhost"
    port: int = 5432
    database: str = "signal_bot"
    username: str = "postgres"
    password: str = ""
    ssl_mode: str = "prefer"

    min_pool_size: int = 2
    max_pool_size: int = 10
    pool_timeout: float = 30.0

    # Seconds; per-call deadlines of the pipeline are tighter (see TimeoutConfig)
    query_timeout: float = 30.0
    connection_timeout: float = 10.0
    slow_query_threshold: float = 1.0
    enable_query_logging: bool = False

    migrations_table: str = "database_migrations"
    auto_migrate: bool = True

    # Price timestamps are stored as TIMESTAMPTZ and read back in UTC
    timezone: str = "UTC"

    @classmethod
    def from_environment(cls) -> "DatabaseConfig":
        """
        Build settings from DATABASE_URL, or from DB_HOST / DB_PORT /
        DB_NAME / DB_USER / DB_PASSWORD when no URL is set, then apply the
        DB_* pool and migration overrides
        """
        config = cls()

        database_url = os.getenv("DATABASE_URL")
        if database_url:
            config._parse_database_url(database_url)
        else:
            config._apply(LOCATION_VARIABLES)
        config._apply(POOL_OVERRIDES)

        logger.info(f"Database config loaded: {config.get_host()}/{config.database}")
        return config

    def _apply(self, variables: List[Tuple[str, str, Callable[[str], Any]]]):
        for name, attribute, parse in variables:
            raw = os.getenv(name)
            if raw is not None and raw != "":
                setattr(self, attribute, parse(raw))

    def _parse_database_url(self, url: str):
        """Take host, port, database, credentials and sslmode from a postgres:// URL"""
        parsed = urlparse(url)
        if parsed.scheme not in ("postgres", "postgresql"):
            raise ValueError(f"Invalid DATABASE_URL scheme: {parsed.scheme}")

        self.host = parsed.hostname or self.host
        self.port = parsed.port or self.port
        self.database = parsed.path.lstrip("/") or self.database
        self.username = parsed.username or self.username
        self.password = parsed.password or self.password

        sslmode = parse_qs(parsed.query).get("sslmode")
        if sslmode:
            self.ssl_mode = sslmode[0]

    def get_connection_string(self) -> str:
        """DSN for asyncpg.create_pool"""
        auth = f"{self.username}:{self.password}" if self.password else self.username
        query = "" if self.ssl_mode == "prefer" else f"?sslmode={self.ssl_mode}"
        return f"postgresql://{auth}@{self.host}:{self.port}/{self.database}{query}"

    def get_pool_kwargs(self) -> Dict[str, Any]:
        return {
            "min_size": self.min_pool_size,
            "max_size": self.max_pool_size,
            "timeout": self.pool_timeout,
            "command_timeout": self.query_timeout,
            "server_settings": {
                "timezone": self.timezone,
                "application_name": APPLICATION_NAME,
            },
        }

    def get_host(self) -> str:
        """host:port, safe to log"""
        return f"{self.host}:{self.port}"

    def validate(self) -> bool:
        """
        Raises:
            ValueError: On the first invalid setting
        """
        checks = [
            (bool(self.host), "Database host is required"),
            (bool(self.database), "Database name is required"),
            (1 <= self.port <= 65535, f"Invalid port number: {self.port}"),
            (self.min_pool_size >= 1, "Minimum pool size must be at least 1"),
            (self.max_pool_size >= self.min_pool_size, "Maximum pool size must be >= minimum pool size"),
            (self.ssl_mode in SSL_MODES, f"Invalid SSL mode: {self.ssl_mode}"),
        ]
        for ok, message in checks:
            if not ok:
                raise ValueError(message)
        return True

    def __repr__(self) -> str:
        return (f"DatabaseConfig({self.get_host()}/{self.database}, user={self.username}, "
                f"pool={self.min_pool_size}..{self.max_pool_size}, ssl={self.ssl_mode})")


__all__ = ["DatabaseConfig"]
