from __future__ import annotations

import sys
from typing import Any, Dict, List, Optional

import typer
from psycopg import sql
from rich import box
from rich.console import Console
from rich.table import Table

from recordstore.config import get_settings
from recordstore.core import RequestContext, Store
from recordstore.errors import StoreError
from recordstore.infrastructure.executor import SqlExecutor
from recordstore.plugins.conditions import table_identifier
from recordstore.plugins.positioning import PositioningPlugin
from recordstore.plugins.sql import SqlStoragePlugin
from recordstore.utils.logging import configure_logging

app = typer.Typer(help="recordstore CLI: positioned records in PostgreSQL.")
console = Console()

BEFORE_ID_FIELD = "beforeId"


def _parse_value(raw: str) -> Any:
    if raw.lower() in ("null", "none"):
        return None
    try:
        return int(raw)
    except ValueError:
        return raw


def _parse_pairs(pairs: Optional[List[str]]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    for pair in pairs or []:
        field, sep, value = pair.partition("=")
        if not sep or not field:
            raise typer.BadParameter(f"Expected field=value, got '{pair}'")
        parsed[field] = _parse_value(value)
    return parsed


def _directive(body: Dict[str, Any], before: Optional[str], last: bool) -> None:
    if before is not None and last:
        raise typer.BadParameter("Use either --before or --last, not both")
    if last:
        body[BEFORE_ID_FIELD] = None
    elif before is not None:
        body[BEFORE_ID_FIELD] = _parse_value(before)


def _build_store(executor: SqlExecutor, table: str, group_fields: Optional[List[str]]) -> Store:
    store = Store(table, "1.0.0")
    store.use(
        PositioningPlugin(
            executor,
            table,
            position_filter=group_fields or [],
            before_id_field=BEFORE_ID_FIELD,
        )
    )
    store.use(SqlStoragePlugin(executor, table))
    return store


def _render(rows: List[Dict[str, Any]], title: str) -> None:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    columns = list(rows[0]) if rows else []
    for column in columns:
        table.add_column(column, justify="right" if column in ("id", "position") else "left")
    for row in rows:
        table.add_row(*["NULL" if row[column] is None else str(row[column]) for column in columns])
    console.print(table)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"statement_timeout_ms={settings.db_statement_timeout_ms} env={settings.app_env}"
    )


@app.command("init-table")
def init_table(
    table: str = typer.Argument(..., help="Table to create."),
    group_fields: Optional[List[str]] = typer.Option(
        None, "--group-field", "-g", help="Partition-key column (repeatable)."
    ),
) -> None:
    """
    Create a demo table with an id, a name, group columns and a position column.
    """
    group_fields = group_fields or []
    columns = [
        sql.SQL("id BIGSERIAL PRIMARY KEY"),
        sql.SQL("name TEXT"),
        *[sql.SQL("{} BIGINT").format(sql.Identifier(field)) for field in group_fields],
        sql.SQL("position INTEGER NOT NULL"),
        sql.SQL("UNIQUE ({}) DEFERRABLE INITIALLY DEFERRED").format(
            sql.SQL(", ").join(sql.Identifier(field) for field in [*group_fields, "position"])
        ),
    ]
    executor = SqlExecutor()
    try:
        executor.execute(
            sql.SQL("CREATE TABLE IF NOT EXISTS {} ({})").format(
                table_identifier(table), sql.SQL(", ").join(columns)
            )
        )
    finally:
        executor.close()
    typer.echo(f"Table '{table}' ready (groups: {', '.join(group_fields) or 'none'}).")


@app.command()
def insert(
    table: str = typer.Argument(..., help="Target table."),
    values: Optional[List[str]] = typer.Option(None, "--set", "-s", help="field=value (repeatable)."),
    group_fields: Optional[List[str]] = typer.Option(
        None, "--group-field", "-g", help="Partition-key column (repeatable)."
    ),
    before: Optional[str] = typer.Option(None, "--before", "-b", help="Place before this id."),
    last: bool = typer.Option(False, "--last", help="Place last explicitly."),
) -> None:
    """
    Insert a record, placed last or before another record of its group.
    """
    body = _parse_pairs(values)
    _directive(body, before, last)
    executor = SqlExecutor()
    try:
        record = _build_store(executor, table, group_fields).post(RequestContext(body=body))
    finally:
        executor.close()
    _render([record] if record else [], f"Inserted into {table}")


@app.command()
def move(
    table: str = typer.Argument(..., help="Target table."),
    record_id: str = typer.Argument(..., help="Id of the record to move."),
    group_fields: Optional[List[str]] = typer.Option(
        None, "--group-field", "-g", help="Partition-key column (repeatable)."
    ),
    before: Optional[str] = typer.Option(None, "--before", "-b", help="Place before this id."),
    last: bool = typer.Option(False, "--last", help="Move to the end of the group."),
) -> None:
    """
    Move an existing record before another record of its group, or to the end.
    """
    body: Dict[str, Any] = {}
    _directive(body, before, last)
    executor = SqlExecutor()
    try:
        store = _build_store(executor, table, group_fields)
        params = {store.id_property: _parse_value(record_id)}
        store.get(RequestContext(params=params))
        record = store.put(RequestContext(body=body, params=params))
    finally:
        executor.close()
    _render([record] if record else [], f"Moved in {table}")


@app.command("list")
def list_records(
    table: str = typer.Argument(..., help="Table to list."),
    where: Optional[List[str]] = typer.Option(None, "--where", "-w", help="field=value filter (repeatable)."),
    limit: int = typer.Option(100, "--limit", "-l", help="Maximum rows to show."),
) -> None:
    """
    List records in position order.
    """
    executor = SqlExecutor()
    try:
        store = _build_store(executor, table, None)
        request = RequestContext(
            options={"conditions": _parse_pairs(where), "sort": {"position": 1}, "limit": limit}
        )
        rows = store.get_query(request)
    finally:
        executor.close()
    _render(rows, f"{table} ({request.grand_total} total)")


def main() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    try:
        app()
    except StoreError as exc:
        typer.echo(f"Error {exc.status_code}: {exc.message}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
