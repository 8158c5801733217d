"""
Driver dispatch for the executor.

Runs a positional ``$N`` statement on whichever handle the caller supplied,
selected by runtime type:

- psycopg ``Connection`` / psycopg_pool ``ConnectionPool`` (synchronous API)
- asyncpg ``Connection`` / ``Pool`` / pool connection proxies (asynchronous API)

Anything else raises ``UnsupportedDriverError``. Driver failures are wrapped
in ``ExecutionError`` with the original exception chained.
"""

from __future__ import annotations

import asyncio
import re
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import asyncpg
import asyncpg.pool
import psycopg
import psycopg_pool
from psycopg.rows import dict_row

from sqld.errors import ExecutionError, UnsupportedDriverError
from sqld.infrastructure.db_factory import apply_statement_timeout
from sqld.query.statement import Statement

SYNC_HANDLE_TYPES: Tuple[type, ...] = (psycopg.Connection, psycopg_pool.ConnectionPool)
ASYNC_HANDLE_TYPES: Tuple[type, ...] = (
    asyncpg.Connection,
    asyncpg.Pool,
    asyncpg.pool.PoolConnectionProxy,
)

_ASYNC_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError)

# $N not preceded by a word character or another $ (dollar-quoting).
_DOLLAR_PARAM_RE = re.compile(r"(?<![\w$])\$(\d+)\b")


def to_pyformat(sql: str, args: Sequence[Any]) -> Tuple[str, List[Any]]:
    """
    Convert ``$N`` placeholders to psycopg's ``%s`` style.

    Literal ``%`` is escaped and arguments are repeated for every occurrence,
    so ``$1 ... $1`` binds the first argument twice.
    """
    ordered: List[Any] = []

    def _sub(match: "re.Match[str]") -> str:
        index = int(match.group(1)) - 1
        if index < 0 or index >= len(args):
            raise ExecutionError(
                f"placeholder ${match.group(1)} has no argument ({len(args)} supplied)",
                details={"sql": sql},
            )
        ordered.append(args[index])
        return "%s"

    converted = _DOLLAR_PARAM_RE.sub(_sub, sql.replace("%", "%%"))
    return converted, ordered


def is_sync_handle(handle: Any) -> bool:
    return isinstance(handle, SYNC_HANDLE_TYPES)


def is_async_handle(handle: Any) -> bool:
    return isinstance(handle, ASYNC_HANDLE_TYPES)


def require_sync(handle: Any) -> None:
    if is_sync_handle(handle):
        return
    hint = "use the async API for asyncpg handles" if is_async_handle(handle) else None
    raise UnsupportedDriverError(handle, hint=hint)


def require_async(handle: Any) -> None:
    if is_async_handle(handle):
        return
    hint = "use the sync API for psycopg handles" if is_sync_handle(handle) else None
    raise UnsupportedDriverError(handle, hint=hint)


@contextmanager
def _connection(handle: Any) -> Iterator[Any]:
    if isinstance(handle, psycopg_pool.ConnectionPool):
        with handle.connection() as conn:
            yield conn
    else:
        yield handle


@contextmanager
def _bounded(conn: Any, timeout_ms: int) -> Iterator[None]:
    # SET LOCAL needs a transaction; autocommit connections would drop it at once.
    if timeout_ms > 0 and conn.autocommit:
        with conn.transaction():
            yield
    else:
        yield


def _failed(exc: Exception, statement: Statement) -> ExecutionError:
    return ExecutionError(
        f"query failed: {exc}",
        details={"sql": statement.sql, "error": type(exc).__name__},
    )


def fetch_all(handle: Any, statement: Statement, timeout_ms: int = 0) -> List[Dict[str, Any]]:
    """Run a SELECT and return rows as ``{column: value}`` dicts."""
    require_sync(handle)
    query, params = to_pyformat(statement.sql, statement.args)
    try:
        with _connection(handle) as conn, _bounded(conn, timeout_ms):
            with conn.cursor(row_factory=dict_row) as cur:
                apply_statement_timeout(cur, timeout_ms)
                cur.execute(query, params)
                return list(cur.fetchall())
    except psycopg.Error as exc:
        raise _failed(exc, statement) from exc


def fetch_value(handle: Any, statement: Statement, timeout_ms: int = 0) -> Any:
    """First column of the first row, or ``None`` for an empty result."""
    require_sync(handle)
    query, params = to_pyformat(statement.sql, statement.args)
    try:
        with _connection(handle) as conn, _bounded(conn, timeout_ms):
            with conn.cursor() as cur:
                apply_statement_timeout(cur, timeout_ms)
                cur.execute(query, params)
                row = cur.fetchone()
    except psycopg.Error as exc:
        raise _failed(exc, statement) from exc
    return row[0] if row else None


def execute_command(handle: Any, statement: Statement, timeout_ms: int = 0) -> int:
    """Run a data-modifying statement and return the affected row count."""
    require_sync(handle)
    query, params = to_pyformat(statement.sql, statement.args)
    try:
        with _connection(handle) as conn, _bounded(conn, timeout_ms):
            with conn.cursor() as cur:
                apply_statement_timeout(cur, timeout_ms)
                cur.execute(query, params)
                return max(cur.rowcount, 0)
    except psycopg.Error as exc:
        raise _failed(exc, statement) from exc


def _timeout_seconds(timeout_ms: int) -> Optional[float]:
    return timeout_ms / 1000.0 if timeout_ms > 0 else None


async def fetch_all_async(
    handle: Any, statement: Statement, timeout_ms: int = 0
) -> List[Dict[str, Any]]:
    require_async(handle)
    try:
        rows = await handle.fetch(
            statement.sql, *statement.args, timeout=_timeout_seconds(timeout_ms)
        )
    except _ASYNC_ERRORS as exc:
        raise _failed(exc, statement) from exc
    return [dict(row) for row in rows]


async def fetch_value_async(handle: Any, statement: Statement, timeout_ms: int = 0) -> Any:
    require_async(handle)
    try:
        return await handle.fetchval(
            statement.sql, *statement.args, timeout=_timeout_seconds(timeout_ms)
        )
    except _ASYNC_ERRORS as exc:
        raise _failed(exc, statement) from exc


def _rows_from_status(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 3".
    tail = status.rsplit(" ", 1)[-1] if status else ""
    return int(tail) if tail.isdigit() else 0


async def execute_command_async(handle: Any, statement: Statement, timeout_ms: int = 0) -> int:
    require_async(handle)
    try:
        status = await handle.execute(
            statement.sql, *statement.args, timeout=_timeout_seconds(timeout_ms)
        )
    except _ASYNC_ERRORS as exc:
        raise _failed(exc, statement) from exc
    return _rows_from_status(status)


__all__ = [
    "ASYNC_HANDLE_TYPES",
    "SYNC_HANDLE_TYPES",
    "execute_command",
    "execute_command_async",
    "fetch_all",
    "fetch_all_async",
    "fetch_value",
    "fetch_value_async",
    "is_async_handle",
    "is_sync_handle",
    "require_async",
    "require_sync",
    "to_pyformat",
]
