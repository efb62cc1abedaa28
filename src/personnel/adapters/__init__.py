"""
Database adapter interfaces and implementations.
"""

from .base import ConnectionConfig, DatabaseAdapter, SSLConfig
from .dsn import DSNConfig, parse_dsn
from .postgres import PostgresAdapter
from .sqlite import SQLiteAdapter

ADAPTERS = {
    "sqlite": SQLiteAdapter,
    "postgresql": PostgresAdapter,
}


def adapter_for(config: ConnectionConfig, *, slow_query_ms: float = 100) -> DatabaseAdapter:
    """
    Instantiate (unconnected) the adapter matching the config's backend.
    """
    return ADAPTERS[config.backend](slow_query_ms=slow_query_ms)


__all__ = [
    "ADAPTERS",
    "ConnectionConfig",
    "DatabaseAdapter",
    "DSNConfig",
    "SSLConfig",
    "PostgresAdapter",
    "SQLiteAdapter",
    "adapter_for",
    "parse_dsn",
]
