"""
Infrastructure package for recordstore.

Centralizes database connectivity concerns (connection factory, pooling,
statement execution). Keep this layer focused on I/O and resource management,
decoupled from store and plugin logic.
"""

from recordstore.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    build_dsn,
    get_sync_connection,
    get_sync_pool,
)
from recordstore.infrastructure.executor import Executor, SqlExecutor

__all__ = [
    "Executor",
    "PoolManager",
    "SqlExecutor",
    "apply_statement_timeout",
    "build_dsn",
    "get_sync_connection",
    "get_sync_pool",
]
