"""
Integration tests for the executor against a real PostgreSQL instance.

These tests verify that:
1. Built statements run unchanged on psycopg connections and pools
2. The same requests run on asyncpg connections
3. Raw queries bind their placeholders positionally
4. Updates report affected rows and never run without WHERE

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os

import asyncpg
import pytest
from psycopg_pool import ConnectionPool

from sqld.config import Settings
from sqld.errors import ExecutionError, MutationSafetyError, SqlShapeError
from sqld.executor import (
    execute,
    execute_async,
    execute_raw,
    execute_raw_async,
    execute_update,
    execute_update_async,
)
from sqld.registry import Registry
from tests.models import Employee, EmployeeSearchParams

# Seed expectations (see db/init.sql)
SEEDED_ROWS = 5
ACTIVE_ROWS = 4
REPORTS_TO_ADA = 3

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


class TestSyncExecutor:
    """Structured queries on a psycopg connection."""

    def test_select_with_filters_and_order(
        self, db_connection, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify external names come back and ordering is honoured."""
        request = {
            "select": ["name", "age"],
            "where": [
                {"field": "status", "operator": "=", "value": "active"},
                {"field": "age", "operator": ">", "value": 35},
            ],
            "order_by": [{"field": "age", "desc": True}],
        }

        response = execute(
            db_connection, Employee, request, registry=registry, settings=test_settings
        )

        assert [row["name"] for row in response.data] == [
            "Edsger Dijkstra",
            "Alan Turing",
            "Ada Lovelace",
        ]
        assert set(response.data[0]) == {"name", "age"}

    def test_pagination_metadata(
        self, db_connection, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify COUNT(*) drives the page metadata."""
        request = {
            "select": ["id"],
            "order_by": [{"field": "id"}],
            "pagination": {"page": 2, "page_size": 2},
        }

        response = execute(
            db_connection, Employee, request, registry=registry, settings=test_settings
        )

        assert seeded_employees == SEEDED_ROWS
        assert [row["id"] for row in response.data] == [3, 4]
        assert response.pagination.total_items == SEEDED_ROWS
        assert response.pagination.total_pages == 3

    def test_in_null_and_array_predicates(
        self, db_connection, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify IN, IS NULL and ANY render to valid PostgreSQL."""
        in_list = execute(
            db_connection,
            Employee,
            {"select": ["id"], "where": [{"field": "id", "operator": "IN", "value": [1, 3, 99]}]},
            registry=registry,
            settings=test_settings,
        )
        no_email = execute(
            db_connection,
            Employee,
            {"select": ["name"], "where": [{"field": "email", "operator": "IS NULL"}]},
            registry=registry,
            settings=test_settings,
        )
        reports = execute(
            db_connection,
            Employee,
            {"select": ["id"], "where": [{"field": "reporting_to", "operator": "ANY", "value": 1}]},
            registry=registry,
            settings=test_settings,
        )

        assert sorted(row["id"] for row in in_list.data) == [1, 3]
        assert no_email.data == [{"name": "Grace Hopper"}]
        assert len(reports.data) == REPORTS_TO_ADA

    def test_select_all_on_a_pool(
        self, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify pools are accepted and every column is mapped back."""
        with ConnectionPool(conninfo=test_settings.dsn, min_size=1, max_size=2, open=True) as pool:
            response = execute(
                pool,
                Employee,
                {"select": ["ALL"], "where": [{"field": "id", "operator": "=", "value": 1}]},
                registry=registry,
                settings=test_settings,
            )

        row = response.data[0]
        assert row["name"] == "Ada Lovelace"
        assert row["reporting_to"] == []
        assert row["created_at"] is not None

    def test_update_then_read_back(
        self, db_connection, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify affected row counts and the persisted change."""
        affected = execute_update(
            db_connection,
            Employee,
            {
                "set": {"is_active": False, "status": "inactive"},
                "where": [{"field": "name", "operator": "=", "value": "Barbara Liskov"}],
            },
            registry=registry,
            settings=test_settings,
        )
        active = execute(
            db_connection,
            Employee,
            {"select": ["id"], "where": [{"field": "is_active", "operator": "=", "value": True}]},
            registry=registry,
            settings=test_settings,
        )

        assert affected == 1
        assert len(active.data) == ACTIVE_ROWS - 1

    def test_update_guards(
        self, db_connection, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify unsafe or empty updates are refused."""
        with pytest.raises(MutationSafetyError):
            execute_update(
                db_connection,
                Employee,
                {"set": {"age": 1}},
                registry=registry,
                settings=test_settings,
            )
        with pytest.raises(ExecutionError):
            execute_update(
                db_connection,
                Employee,
                {"set": {"age": 1}, "where": [{"field": "id", "operator": "=", "value": 999}]},
                require_rows=True,
                registry=registry,
                settings=test_settings,
            )

    def test_raw_query(
        self, db_connection, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify raw placeholders bind and rows are shaped by the result model."""
        rows = execute_raw(
            db_connection,
            EmployeeSearchParams,
            Employee,
            {
                "query": (
                    "SELECT full_name, age FROM employees "
                    "WHERE age >= {{min_age}} AND status = {{status}} ORDER BY age"
                ),
                "params": {"min_age": 40, "status": "active"},
            },
            registry=registry,
            settings=test_settings,
        )

        assert rows == [
            {"name": "Alan Turing", "age": 41},
            {"name": "Edsger Dijkstra", "age": 72},
        ]

    def test_raw_query_never_reaches_the_database_when_mutating(
        self, db_connection, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify a DELETE is rejected and the table is untouched."""
        with pytest.raises(SqlShapeError):
            execute_raw(
                db_connection,
                None,
                Employee,
                {"query": "DELETE FROM employees"},
                registry=registry,
                settings=test_settings,
            )

        with db_connection.cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM employees;")
            assert cur.fetchone()[0] == SEEDED_ROWS


class TestAsyncExecutor:
    """The same requests on an asyncpg connection."""

    @pytest.mark.asyncio
    async def test_query_update_and_raw(
        self, seeded_employees, registry: Registry, test_settings: Settings
    ):
        """Verify the async API end to end on one connection."""
        conn = await asyncpg.connect(test_settings.dsn)
        try:
            response = await execute_async(
                conn,
                Employee,
                {
                    "select": ["id", "name"],
                    "where": [{"field": "reporting_to", "operator": "CONTAINS", "value": [1, 2]}],
                    "pagination": {"page": 1},
                },
                registry=registry,
                settings=test_settings,
            )
            affected = await execute_update_async(
                conn,
                Employee,
                {
                    "set": {"age": 37},
                    "where": [{"field": "id", "operator": "=", "value": 1}],
                },
                registry=registry,
                settings=test_settings,
            )
            rows = await execute_raw_async(
                conn,
                {"id": int},
                Employee,
                {"query": "SELECT id, age FROM employees WHERE id = {{id}}", "params": {"id": 1}},
                registry=registry,
                settings=test_settings,
            )
        finally:
            await conn.close()

        assert response.data == [{"id": 4, "name": "Edsger Dijkstra"}]
        assert response.pagination.total_items == 1
        assert affected == 1
        assert rows == [{"id": 1, "age": 37}]
