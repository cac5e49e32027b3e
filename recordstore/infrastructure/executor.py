"""
Query execution for recordstore plugins.

`SqlExecutor` is the single doorway plugins use to reach PostgreSQL. Rows come
back as dicts. A transaction scope binds one pooled connection to the current
context; every `execute()` issued inside the scope, by any plugin sharing the
executor, runs on that connection and commits or rolls back with it.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Generator, List, Optional, Protocol, Sequence, Union, runtime_checkable

from psycopg import Connection, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from recordstore.config import get_settings
from recordstore.infrastructure.db_factory import apply_statement_timeout, get_sync_pool

Query = Union[str, sql.Composable]
Row = Dict[str, Any]


@runtime_checkable
class Executor(Protocol):
    """
    What plugins need from the storage layer.

    Implementations must run every `execute()` made inside an open
    `transaction()` scope on the same underlying transaction.
    """

    def execute(self, query: Query, params: Sequence[Any] = ()) -> List[Row]:
        ...

    def transaction(self) -> Any:
        ...


class SqlExecutor:
    """
    psycopg-backed Executor drawing connections from a ConnectionPool.

    Parameters
    ----------
    pool : ConnectionPool | None
        Pool to draw from. Defaults to the process-wide pool from PoolManager.
    dsn_override : str | None
        Build a private pool for this DSN instead (tests, CLI).
    statement_timeout_ms : int | None
        Per-transaction statement timeout. Defaults to settings; 0 disables.
    """

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        *,
        dsn_override: Optional[str] = None,
        statement_timeout_ms: Optional[int] = None,
    ) -> None:
        self._pool = pool
        self._dsn_override = dsn_override
        self._owns_pool = False
        if statement_timeout_ms is None:
            statement_timeout_ms = get_settings().db_statement_timeout_ms
        self.statement_timeout_ms = statement_timeout_ms
        self._active: ContextVar[Optional[Connection]] = ContextVar(
            f"recordstore_active_connection_{id(self)}", default=None
        )

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool
        if self._dsn_override:
            settings = get_settings()
            self._pool = ConnectionPool(
                conninfo=self._dsn_override,
                min_size=settings.db_pool_min_size,
                max_size=settings.db_pool_max_size,
                open=True,
            )
            self._owns_pool = True
        else:
            self._pool = get_sync_pool()
        return self._pool

    @property
    def in_transaction(self) -> bool:
        return self._active.get() is not None

    @contextmanager
    def transaction(self) -> Generator[Connection, None, None]:
        """
        Open a transaction scope, or a savepoint when one is already open.

        Leaving the scope with an exception rolls everything issued inside it
        back; nothing is retried here.
        """
        active = self._active.get()
        if active is not None:
            with active.transaction():
                yield active
            return

        with self._get_pool().connection() as conn:
            token = self._active.set(conn)
            try:
                with conn.transaction():
                    if self.statement_timeout_ms:
                        with conn.cursor() as cur:
                            apply_statement_timeout(cur, self.statement_timeout_ms, local=True)
                    yield conn
            finally:
                self._active.reset(token)

    def execute(self, query: Query, params: Sequence[Any] = ()) -> List[Row]:
        """
        Run one statement and return its rows as dicts (empty for DML without RETURNING).

        Outside a transaction scope the statement runs in its own short transaction.
        """
        conn = self._active.get()
        if conn is None:
            with self.transaction() as conn:
                return self._run(conn, query, params)
        return self._run(conn, query, params)

    @staticmethod
    def _run(conn: Connection, query: Query, params: Sequence[Any]) -> List[Row]:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, list(params))
            if cur.description is None:
                return []
            return cur.fetchall()

    def close(self) -> None:
        """Close the pool if this executor created it."""
        if self._owns_pool and self._pool is not None:
            self._pool.close()
            self._pool = None
            self._owns_pool = False


__all__ = ["Executor", "Query", "Row", "SqlExecutor"]
