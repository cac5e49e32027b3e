"""
Seed script for positioned demo tables.

Creates (if needed) a table partitioned by ``category_id`` and fills each
category with densely positioned rows, loaded through Postgres COPY.
"""

from __future__ import annotations

import random
import sys
import time
from typing import Iterator, Tuple

import psycopg
import typer
from psycopg import sql

from recordstore.infrastructure.db_factory import get_sync_connection
from recordstore.plugins.conditions import table_identifier

app = typer.Typer(help="Create and seed a positioned demo table in Postgres (COPY).")

SeedRow = Tuple[str, int, int]


def _create_table(conn: psycopg.Connection, table: str) -> None:
    conn.execute(
        sql.SQL(
            """
            CREATE TABLE IF NOT EXISTS {} (
                id BIGSERIAL PRIMARY KEY,
                name TEXT,
                category_id BIGINT,
                position INTEGER NOT NULL,
                UNIQUE (category_id, position) DEFERRABLE INITIALLY DEFERRED
            )
            """
        ).format(table_identifier(table))
    )


def _generate_rows(categories: int, per_category: int, seed: int) -> Iterator[SeedRow]:
    """Yield ``(name, category_id, position)`` with positions 1..n inside each category."""
    rng = random.Random(seed)
    words = ["alpha", "beta", "gamma", "delta", "epsilon", "zeta"]
    for category_id in range(1, categories + 1):
        for position in range(1, per_category + 1):
            yield f"{rng.choice(words)}-{category_id}-{position}", category_id, position


def _copy_into_db(dsn: str | None, table: str, rows: Iterator[SeedRow]) -> int:
    loaded = 0
    with get_sync_connection(dsn_override=dsn) as conn:
        _create_table(conn, table)
        with conn.cursor() as cur:
            with cur.copy(
                sql.SQL("COPY {} (name, category_id, position) FROM STDIN").format(
                    table_identifier(table)
                )
            ) as copy:
                for row in rows:
                    copy.write_row(row)
                    loaded += 1
        conn.commit()
    return loaded


@app.command()
def main(
    table: str = typer.Option("items", "--table", "-t", help="Table to create and seed."),
    categories: int = typer.Option(3, "--categories", "-c", help="Number of categories."),
    per_category: int = typer.Option(5, "--per-category", "-n", help="Rows per category."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Seed a table with densely positioned rows per category.
    """
    start = time.perf_counter()
    loaded = _copy_into_db(
        dsn, table, _generate_rows(categories, per_category, seed)
    )
    typer.echo(
        f"Seeded {loaded:,} rows into '{table}' "
        f"({categories} categories x {per_category}) in {time.perf_counter() - start:.2f}s."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
