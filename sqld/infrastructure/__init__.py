"""
Infrastructure package for sqld.

Centralizes database connectivity concerns: connection factories, pooling
and driver dispatch. Keep this layer focused on I/O, decoupled from
request validation and SQL construction.
"""

from sqld.infrastructure.db_factory import (
    PoolManager,
    apply_statement_timeout,
    create_async_pool,
    get_async_connection,
    get_sync_connection,
    get_sync_pool,
)

__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "create_async_pool",
    "get_async_connection",
    "get_sync_connection",
    "get_sync_pool",
]
