"""
Pytest configuration for sqld.

Provides fixtures for:
- Isolated registries with the sample models registered
- Settings overrides
- Database connection management for integration tests
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

import psycopg
import pytest

from sqld.config import Settings
from sqld.domain.models import ModelMetadata
from sqld.registry import Registry
from tests.models import Account, Employee


@pytest.fixture
def registry() -> Registry:
    """A fresh registry per test; the process-wide default is never touched."""
    return Registry()


@pytest.fixture
def employee_meta(registry: Registry) -> ModelMetadata:
    return registry.register(Employee)


@pytest.fixture
def account_meta(registry: Registry) -> ModelMetadata:
    return registry.register(Account)


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
        db_name=os.getenv("DB_NAME", "sqld"),
        log_level="DEBUG",
        lazy_registration=True,
    )


@pytest.fixture(scope="session")
def db_connection_available(test_settings: Settings) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_settings.dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_settings: Settings, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_settings.dsn, autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def seeded_employees(db_connection: psycopg.Connection) -> int:
    """
    (Re)create the employees table from db/init.sql, which also seeds it.

    Returns the number of seeded rows.
    """
    init_sql_path = Path(__file__).parent.parent / "db" / "init.sql"
    with db_connection.cursor() as cur:
        cur.execute(init_sql_path.read_text(encoding="utf-8"))
        cur.execute("SELECT COUNT(*) FROM employees;")
        count = cur.fetchone()[0]
    return count
