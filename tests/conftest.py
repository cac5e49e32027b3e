"""
Pytest configuration for recordstore.

Provides fixtures for:
- Settings override for integration tests
- Database connection management
- A positioned scratch table, recreated per test
"""

from __future__ import annotations

import os
from typing import Generator

import psycopg
import pytest
from psycopg import sql

from recordstore.config import Settings
from recordstore.infrastructure.executor import SqlExecutor

ITEMS_TABLE = "rs_test_items"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "recordstore"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def items_table(db_connection: psycopg.Connection) -> Generator[str, None, None]:
    """
    Recreate the scratch table before each test function and drop it afterwards.
    """
    table = sql.Identifier(ITEMS_TABLE)
    db_connection.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(table))
    db_connection.execute(
        sql.SQL(
            """
            CREATE TABLE {} (
                id BIGSERIAL PRIMARY KEY,
                name TEXT,
                category_id BIGINT,
                position INTEGER NOT NULL,
                UNIQUE (category_id, position) DEFERRABLE INITIALLY DEFERRED
            )
            """
        ).format(table)
    )
    yield ITEMS_TABLE
    db_connection.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(table))


@pytest.fixture(scope="function")
def executor(test_dsn: str, items_table: str) -> Generator[SqlExecutor, None, None]:
    """
    Executor with a private pool pointed at the test database.
    """
    ex = SqlExecutor(dsn_override=test_dsn, statement_timeout_ms=5000)
    try:
        yield ex
    finally:
        ex.close()
