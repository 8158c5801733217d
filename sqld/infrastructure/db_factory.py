"""
Database connection factory for sqld.

Convenience helpers for obtaining driver handles the executor understands:
psycopg connections and pools for the synchronous API, asyncpg connections
and pools for the asynchronous one. The PoolManager singleton owns the
shared psycopg pool and closes it on interpreter exit.

Connection attempts are retried on transient failures using tenacity.
Transactions and connection lifecycle beyond this remain the caller's job.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Any, Generator, Optional

import asyncpg
import psycopg
from psycopg import Connection, sql
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from sqld.config import get_settings
from sqld.utils.logging import get_logger

log = get_logger(__name__)


class PoolManager:
    """
    Thread-safe singleton owning the shared psycopg connection pool.

    The pool is created lazily and closed via an atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._sync_pool = None
                atexit.register(cls._instance.close_all)
            return cls._instance

    def get_sync_pool(self, min_size: int = 1, max_size: int = 10) -> ConnectionPool:
        """
        Get or create the synchronous connection pool.

        Parameters
        ----------
        min_size : int
            Minimum number of idle connections to keep.
        max_size : int
            Maximum total connections in the pool.
        """
        with self._lock:
            if self._sync_pool is None:
                self._sync_pool = ConnectionPool(
                    conninfo=get_settings().dsn,
                    min_size=min_size,
                    max_size=max_size,
                    open=True,
                )
                log.debug(
                    "opened connection pool",
                    extra={"min_size": min_size, "max_size": max_size},
                )
            return self._sync_pool

    @contextmanager
    def sync_connection(self) -> Generator[Connection, None, None]:
        """
        Borrow a connection from the shared pool.

        Example
        -------
            with PoolManager().sync_connection() as conn:
                rows = execute(conn, Employee, {"select": ["ALL"]})
        """
        pool = self.get_sync_pool()
        with pool.connection() as conn:
            yield conn

    def close_all(self) -> None:
        """Close the managed pool; called automatically at exit."""
        with self._lock:
            pool, self._sync_pool = self._sync_pool, None
        if pool is not None:
            try:
                pool.close()
            except psycopg.Error as exc:
                log.warning("failed to close connection pool", extra={"error": str(exc)})


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection() -> Connection:
    """
    Open a dedicated psycopg connection, retrying transient failures up to 3 times.

    Prefer the pool for repeated use.
    """
    return psycopg.connect(get_settings().dsn)


def get_sync_pool(min_size: int = 1, max_size: int = 10) -> ConnectionPool:
    return PoolManager().get_sync_pool(min_size=min_size, max_size=max_size)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((OSError, ConnectionError, asyncpg.CannotConnectNowError)),
    reraise=True,
)
async def get_async_connection() -> asyncpg.Connection:
    """Open a dedicated asyncpg connection, retrying transient failures up to 3 times."""
    return await asyncpg.connect(get_settings().dsn)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((OSError, ConnectionError, asyncpg.CannotConnectNowError)),
    reraise=True,
)
async def create_async_pool(min_size: int = 1, max_size: int = 10) -> asyncpg.Pool:
    """
    Create an asyncpg pool. The caller owns it and must ``await pool.close()``.
    """
    return await asyncpg.create_pool(get_settings().dsn, min_size=min_size, max_size=max_size)


def apply_statement_timeout(cursor: Any, timeout_ms: int) -> None:
    """
    Bound the statements run in ``cursor``'s current transaction; 0 leaves the
    server default.

    ``SET LOCAL`` ends with the transaction, so neither the caller's session nor
    a pooled connection keeps the timeout afterwards.
    """
    if timeout_ms <= 0:
        return
    cursor.execute(
        sql.SQL("SET LOCAL statement_timeout = {}").format(sql.Literal(int(timeout_ms)))
    )


__all__ = [
    "PoolManager",
    "apply_statement_timeout",
    "create_async_pool",
    "get_async_connection",
    "get_sync_connection",
    "get_sync_pool",
]
