"""
Structured query and update builder.

Validates a request against model metadata, translates external field names
into column names and serializes the result through
:mod:`sqld.query.statement`. Every entry point validates first, so no
unchecked request ever reaches the serializer.
"""
from __future__ import annotations

from typing import Any, List, Mapping, Optional, Union

from sqld.domain.models import Field, ModelMetadata
from sqld.domain.requests import (
    SELECT_ALL,
    Operator,
    QueryRequest,
    UpdateRequest,
    coerce_request,
)
from sqld.errors import ValueTypeError
from sqld.query.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    calculate_offset,
    normalize_pagination,
)
from sqld.query.statement import Predicate, SelectStatement, Statement, UpdateStatement
from sqld.query.validator import validate_condition, validate_query, validate_update
from sqld.registry import Registry, default_registry
from sqld.utils.logging import get_logger

log = get_logger(__name__)


def _convert(field: Field, value: Any, registry: Registry) -> Any:
    converter = registry.get_converter(field.declared_type)
    if converter is None and field.normalized.python_type is not None:
        converter = registry.get_converter(field.normalized.python_type)
    if converter is None or value is None:
        return value
    try:
        return converter(value)
    except Exception as exc:
        raise ValueTypeError(
            f"value for field {field.external_name!r} could not be converted: {exc}",
            field=field.external_name,
            expected=str(field.normalized),
            actual=type(value).__name__,
        ) from exc


def _predicates(
    request: Union[QueryRequest, UpdateRequest], metadata: ModelMetadata, registry: Registry
) -> List[Predicate]:
    predicates: List[Predicate] = []
    for condition in request.where:
        field, op = validate_condition(condition, metadata)
        value = condition.value
        if op.is_null_check:
            value = None
        elif op in (Operator.IN, Operator.NOT_IN):
            value = [_convert(field, item, registry) for item in value]
        elif not op.is_array_operator:
            value = _convert(field, value, registry)
        predicates.append(Predicate(field.column_name, op, value))
    return predicates


def _select_statement(
    metadata: ModelMetadata,
    request: QueryRequest,
    registry: Registry,
    default_page_size: int,
    max_page_size: int,
) -> SelectStatement:
    validate_query(request, metadata)

    if request.select == [SELECT_ALL]:
        columns = metadata.columns
    else:
        columns = [metadata.fields[name].column_name for name in request.select]

    limit, offset = request.limit, request.offset
    if request.pagination is not None:
        page = normalize_pagination(request.pagination, default_page_size, max_page_size)
        limit = page.page_size
        offset = calculate_offset(page.page, page.page_size)

    return SelectStatement(
        table=metadata.table_name,
        columns=columns,
        where=_predicates(request, metadata, registry),
        order_by=[(metadata.fields[o.field].column_name, o.desc) for o in request.order_by],
        limit=limit,
        offset=offset,
    )


def build_query(
    metadata: ModelMetadata,
    request: Union[QueryRequest, Mapping[str, Any]],
    *,
    registry: Optional[Registry] = None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> Statement:
    """
    Build the SELECT for ``request``.

    ``pagination`` overrides ``limit``/``offset``; both are bound as parameters
    after the WHERE values.
    """
    request = coerce_request(request, QueryRequest)
    statement = _select_statement(
        metadata, request, registry or default_registry(), default_page_size, max_page_size
    ).to_sql()
    log.debug("built select", extra={"table": metadata.table_name, "sql": statement.sql})
    return statement


def build_count_query(
    metadata: ModelMetadata,
    request: Union[QueryRequest, Mapping[str, Any]],
    *,
    registry: Optional[Registry] = None,
) -> Statement:
    """``SELECT COUNT(*)`` with the same WHERE clause as ``build_query``."""
    request = coerce_request(request, QueryRequest)
    statement = _select_statement(
        metadata, request, registry or default_registry(), DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
    ).to_count_sql()
    log.debug("built count", extra={"table": metadata.table_name, "sql": statement.sql})
    return statement


def build_update(
    metadata: ModelMetadata,
    request: Union[UpdateRequest, Mapping[str, Any]],
    *,
    registry: Optional[Registry] = None,
) -> Statement:
    request = coerce_request(request, UpdateRequest)
    registry = registry or default_registry()
    validate_update(request, metadata)

    assignments = []
    for name, value in request.set.items():
        field = metadata.fields[name]
        assignments.append((field.column_name, _convert(field, value, registry)))

    statement = UpdateStatement(
        table=metadata.table_name,
        assignments=assignments,
        where=_predicates(request, metadata, registry),
    ).to_sql()
    log.debug("built update", extra={"table": metadata.table_name, "sql": statement.sql})
    return statement


__all__ = ["build_count_query", "build_query", "build_update"]
