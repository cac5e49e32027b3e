"""
PostgreSQL storage plugin.

Fulfills the storage stages of the store pipeline (fetch, insert, put, delete,
query) against one table, and supplies the transaction scope write requests
run in. Whatever is in ``request.body`` when `on_insert`/`on_put` runs is what
gets persisted, so placement plugins must be registered before this one or
use the ``on_before_*`` stages.
"""

from __future__ import annotations

from typing import Any, ContextManager, Dict, Mapping, Optional

from psycopg import sql

from recordstore.core.context import HookContext
from recordstore.core.hooks import StorePlugin
from recordstore.errors import BadRequestError, ConfigurationError
from recordstore.infrastructure.executor import Executor, Row
from recordstore.plugins.conditions import build_order_by, build_where, table_identifier
from recordstore.utils.logging import get_logger

log = get_logger(__name__)


class SqlStoragePlugin(StorePlugin):
    """
    Persist store records in a PostgreSQL table.

    Parameters
    ----------
    executor : Executor
        Statement runner shared with any other plugin that must write in the
        same transaction.
    table : str
        Backing table, optionally schema-qualified (``"app.items"``).
    """

    name: str = "sql"

    def __init__(self, executor: Executor, table: str) -> None:
        if executor is None:
            raise ConfigurationError("SQL storage plugin requires an executor")
        if not table:
            raise ConfigurationError("SQL storage plugin requires a table name")
        self.executor = executor
        self.table = table
        self._table = table_identifier(table)

    def install(self, store: Any) -> None:
        log.info(
            f"SQL storage plugin installed for store '{store.store_name}', table '{self.table}'",
            extra={"plugin": self.name, "store": store.store_name, "table": self.table},
        )

    def transaction(self, context: HookContext) -> ContextManager[Any]:
        return self.executor.transaction()

    # Statements

    def _select_by_id(self, id_property: str, id_value: Any) -> Optional[Row]:
        rows = self.executor.execute(
            sql.SQL("SELECT * FROM {} WHERE {} = %s").format(self._table, sql.Identifier(id_property)),
            [id_value],
        )
        return rows[0] if rows else None

    def _insert(self, values: Mapping[str, Any]) -> Optional[Row]:
        if not values:
            rows = self.executor.execute(
                sql.SQL("INSERT INTO {} DEFAULT VALUES RETURNING *").format(self._table)
            )
            return rows[0] if rows else None
        columns = list(values)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            self._table,
            sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            sql.SQL(", ").join([sql.Placeholder()] * len(columns)),
        )
        rows = self.executor.execute(query, [values[column] for column in columns])
        return rows[0] if rows else None

    def _update(self, id_property: str, id_value: Any, values: Mapping[str, Any]) -> Optional[Row]:
        columns = [column for column in values if column != id_property]
        if not columns:
            return self._select_by_id(id_property, id_value)
        query = sql.SQL("UPDATE {} SET {} WHERE {} = %s RETURNING *").format(
            self._table,
            sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(column)) for column in columns
            ),
            sql.Identifier(id_property),
        )
        rows = self.executor.execute(query, [values[column] for column in columns] + [id_value])
        return rows[0] if rows else None

    # Hooks

    def on_fetch(self, context: HookContext) -> None:
        id_property = context.store.id_property
        id_value = context.request.params.get(id_property)
        if id_value is None:
            return
        context.request.record = self._select_by_id(id_property, id_value)

    def on_insert(self, context: HookContext) -> None:
        context.request.record = self._insert(context.request.body)
        log.debug(
            "Record inserted",
            extra={"table": self.table, "id": (context.request.record or {}).get(context.store.id_property)},
        )

    def on_put(self, context: HookContext) -> None:
        """Upsert: update the row named by params, insert it when it does not exist."""
        request = context.request
        id_property = context.store.id_property
        id_value = request.params.get(id_property)
        if id_value is None:
            raise BadRequestError(f"Missing '{id_property}' in request params")

        existing = request.record
        if existing is None:
            existing = self._select_by_id(id_property, id_value)

        if existing is None:
            request.record = self._insert({**request.body, id_property: id_value})
        else:
            request.record = self._update(id_property, id_value, request.body)

    def on_delete(self, context: HookContext) -> None:
        id_property = context.store.id_property
        id_value = context.request.params.get(id_property)
        if id_value is None:
            return
        self.executor.execute(
            sql.SQL("DELETE FROM {} WHERE {} = %s").format(self._table, sql.Identifier(id_property)),
            [id_value],
        )

    def on_query(self, context: HookContext) -> None:
        """
        Run a filtered, sorted, paged SELECT.

        Reads ``conditions`` (field -> value, None meaning IS NULL), ``sort``
        (field -> 1 | -1), ``skip`` and ``limit`` from ``request.options``.
        """
        options: Dict[str, Any] = context.request.options
        conditions: Mapping[str, Any] = options.get("conditions") or {}
        skip = int(options.get("skip") or 0)
        limit = int(options.get("limit") or context.store.default_limit_on_queries)

        where, params = build_where(conditions.items())
        query = sql.SQL("SELECT * FROM {} WHERE {}{} LIMIT %s OFFSET %s").format(
            self._table, where, build_order_by(options.get("sort") or {})
        )
        context.request.data = self.executor.execute(query, [*params, limit, skip])

        count = self.executor.execute(
            sql.SQL("SELECT COUNT(*) AS grand_total FROM {} WHERE {}").format(self._table, where),
            params,
        )
        context.request.grand_total = count[0]["grand_total"] if count else 0


__all__ = ["SqlStoragePlugin"]
