from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest

from sqld.domain.models import Model, ModelMetadata, column
from sqld.domain.requests import QueryRequest
from sqld.errors import MutationSafetyError, ValueTypeError
from sqld.query.builder import build_count_query, build_query, build_update
from sqld.registry import Registry
from tests.models import Status

EMPLOYEE_COLUMNS = (
    '"id", "full_name", "age", "email", "salary", "status", "is_active", "created_at", '
    '"reporting_to"'
)


def test_simple_equality_query(account_meta: ModelMetadata, registry: Registry) -> None:
    request = {"select": ["id", "name"], "where": [{"field": "id", "operator": "=", "value": 25}]}

    sql, args = build_query(account_meta, request, registry=registry)

    assert sql == 'SELECT "id", "name" FROM "accounts" WHERE "id" = $1'
    assert args == [25]


def test_external_names_become_column_names(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = QueryRequest(
        select=["name", "age"],
        where=[{"field": "name", "operator": "ILIKE", "value": "a%"}],
        order_by=[{"field": "name"}],
    )

    sql, args = build_query(employee_meta, request, registry=registry)

    assert sql == (
        'SELECT "full_name", "age" FROM "employees" '
        'WHERE "full_name" ILIKE $1 ORDER BY "full_name" ASC'
    )
    assert args == ["a%"]


def test_select_all_expands_to_every_column(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    sql, args = build_query(employee_meta, {"select": ["ALL"]}, registry=registry)

    assert sql == f'SELECT {EMPLOYEE_COLUMNS} FROM "employees"'
    assert args == []


def test_in_list_binds_one_placeholder_per_value(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = {
        "select": ["id"],
        "where": [
            {"field": "age", "operator": ">", "value": 30},
            {"field": "name", "operator": "IN", "value": ["Ada", "Alan"]},
        ],
    }

    sql, args = build_query(employee_meta, request, registry=registry)

    assert sql == (
        'SELECT "id" FROM "employees" WHERE "age" > $1 AND "full_name" IN ($2, $3)'
    )
    assert args == [30, "Ada", "Alan"]


def test_in_rejects_a_bare_string(employee_meta: ModelMetadata, registry: Registry) -> None:
    request = {"select": ["id"], "where": [{"field": "name", "operator": "IN", "value": "Ada"}]}

    with pytest.raises(ValueTypeError):
        build_query(employee_meta, request, registry=registry)


def test_empty_in_lists_render_constant_predicates(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = {
        "select": ["id"],
        "where": [
            {"field": "id", "operator": "IN", "value": []},
            {"field": "age", "operator": "NOT IN", "value": []},
            {"field": "age", "operator": "<>", "value": 40},
        ],
    }

    sql, args = build_query(employee_meta, request, registry=registry)

    assert sql == 'SELECT "id" FROM "employees" WHERE (1=0) AND (1=1) AND "age" <> $1'
    assert args == [40]


def test_null_checks_bind_nothing(employee_meta: ModelMetadata, registry: Registry) -> None:
    request = {
        "select": ["id"],
        "where": [
            {"field": "email", "operator": "IS NULL"},
            {"field": "created_at", "operator": "is not null"},
        ],
    }

    sql, args = build_query(employee_meta, request, registry=registry)

    assert sql == (
        'SELECT "id" FROM "employees" WHERE "email" IS NULL AND "created_at" IS NOT NULL'
    )
    assert args == []


def test_array_operators(employee_meta: ModelMetadata, registry: Registry) -> None:
    request = {
        "select": ["id"],
        "where": [
            {"field": "reporting_to", "operator": "ANY", "value": 1},
            {"field": "reporting_to", "operator": "CONTAINS", "value": (1, 2)},
        ],
    }

    sql, args = build_query(employee_meta, request, registry=registry)

    assert sql == (
        'SELECT "id" FROM "employees" '
        'WHERE $1 = ANY("reporting_to") AND "reporting_to" @> $2'
    )
    assert args == [1, [1, 2]]


def test_limit_and_offset_follow_where_values(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = {
        "select": ["id"],
        "where": [{"field": "is_active", "operator": "=", "value": True}],
        "orderBy": [{"field": "age", "desc": True}, {"field": "id"}],
        "limit": 5,
        "offset": 10,
    }

    sql, args = build_query(employee_meta, request, registry=registry)

    assert sql == (
        'SELECT "id" FROM "employees" WHERE "is_active" = $1 '
        'ORDER BY "age" DESC, "id" ASC LIMIT $2 OFFSET $3'
    )
    assert args == [True, 5, 10]


def test_pagination_overrides_limit_and_offset(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = {
        "select": ["id"],
        "limit": 1,
        "offset": 1,
        "pagination": {"page": 3, "pageSize": 20},
    }

    sql, args = build_query(employee_meta, request, registry=registry)

    assert sql == 'SELECT "id" FROM "employees" LIMIT $1 OFFSET $2'
    assert args == [20, 40]


def test_null_page_in_a_query_request_starts_at_the_first_page(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = {"select": ["id"], "pagination": {"page": None, "page_size": 5}}

    _, args = build_query(employee_meta, request, registry=registry)

    assert args == [5, 0]


def test_pagination_is_clamped_to_the_configured_bounds(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = {"select": ["id"], "pagination": {"page": 0, "page_size": 500}}

    _, args = build_query(
        employee_meta, request, registry=registry, default_page_size=5, max_page_size=50
    )

    assert args == [50, 0]


def test_count_query_keeps_where_and_drops_paging(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    request = {
        "select": ["id", "name"],
        "where": [{"field": "status", "operator": "=", "value": "active"}],
        "order_by": [{"field": "age"}],
        "pagination": {"page": 2},
    }

    sql, args = build_count_query(employee_meta, request, registry=registry)

    assert sql == 'SELECT COUNT(*) FROM "employees" WHERE "status" = $1'
    assert args == ["active"]


def test_update_binds_set_before_where(employee_meta: ModelMetadata, registry: Registry) -> None:
    request = {
        "set": {"age": 37, "email": None},
        "where": [{"field": "id", "operator": "=", "value": 1}],
    }

    sql, args = build_update(employee_meta, request, registry=registry)

    assert sql == 'UPDATE "employees" SET "age" = $1, "email" = $2 WHERE "id" = $3'
    assert args == [37, None, 1]


def test_update_without_where_is_refused(employee_meta: ModelMetadata, registry: Registry) -> None:
    with pytest.raises(MutationSafetyError):
        build_update(employee_meta, {"set": {"age": 1}}, registry=registry)


def test_converters_adapt_bound_values(employee_meta: ModelMetadata, registry: Registry) -> None:
    registry.register_converter(Decimal, lambda v: Decimal(str(v)))
    registry.register_converter(Status, lambda v: Status(v).value)
    request = {
        "select": ["id"],
        "where": [
            {"field": "salary", "operator": ">=", "value": 100000.5},
            {"field": "status", "operator": "IN", "value": ["active", Status.INACTIVE]},
        ],
    }

    _, args = build_query(employee_meta, request, registry=registry)

    assert args == [Decimal("100000.5"), "active", "inactive"]
    assert type(args[2]) is str


def test_failing_converter_is_reported_as_type_mismatch(
    employee_meta: ModelMetadata, registry: Registry
) -> None:
    registry.register_converter(Status, Status)
    request = {
        "set": {"status": "archived"},
        "where": [{"field": "id", "operator": "=", "value": 1}],
    }

    with pytest.raises(ValueTypeError) as excinfo:
        build_update(employee_meta, request, registry=registry)

    assert excinfo.value.field == "status"


class _Order(Model):
    id: int = column("id", "id")
    position: int = column("order", "order")
    created_at: Optional[datetime] = column("createdAt", "CreatedAt", None)

    @classmethod
    def table_name(cls) -> str:
        return "user"


class _AuditEntry(Model):
    id: int = column("id", "id")

    @classmethod
    def table_name(cls) -> str:
        return "audit.Entries"


def test_reserved_and_mixed_case_identifiers_are_quoted(registry: Registry) -> None:
    meta = registry.register(_Order)
    request = {
        "select": ["order", "createdAt"],
        "where": [{"field": "order", "operator": "=", "value": 3}],
        "order_by": [{"field": "createdAt", "desc": True}],
    }

    sql, args = build_query(meta, request, registry=registry)

    assert sql == (
        'SELECT "order", "CreatedAt" FROM "user" WHERE "order" = $1 ORDER BY "CreatedAt" DESC'
    )
    assert args == [3]


def test_update_quotes_reserved_columns(registry: Registry) -> None:
    meta = registry.register(_Order)
    request = {"set": {"order": 1}, "where": [{"field": "id", "operator": "=", "value": 9}]}

    sql, args = build_update(meta, request, registry=registry)

    assert sql == 'UPDATE "user" SET "order" = $1 WHERE "id" = $2'
    assert args == [1, 9]


def test_schema_qualified_table_is_quoted_per_part(registry: Registry) -> None:
    meta = registry.register(_AuditEntry)

    sql, _ = build_count_query(meta, {"select": ["id"]}, registry=registry)

    assert sql == 'SELECT COUNT(*) FROM "audit"."Entries"'
