"""
Executor: boundary glue between built statements and a database handle.

Resolves model metadata, builds and validates the statement, dispatches it
to the driver matching the handle's type and maps result columns back to
external field names. The synchronous functions take psycopg handles, the
``*_async`` ones take asyncpg handles.

Transactions are the caller's responsibility: pass a connection that is
already inside one if the statement must be part of a unit of work.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqld.config import Settings, get_settings
from sqld.domain.models import Field, ModelMetadata
from sqld.domain.requests import (
    SELECT_ALL,
    ExecuteRawRequest,
    PaginationRequest,
    QueryRequest,
    QueryResponse,
    UpdateRequest,
    coerce_request,
)
from sqld.errors import ExecutionError, SqldError
from sqld.infrastructure import drivers
from sqld.query.builder import build_count_query, build_query, build_update
from sqld.query.pagination import build_response_meta, normalize_pagination
from sqld.query.raw import ParamsSpec, prepare_raw
from sqld.query.statement import Statement
from sqld.query.validator import resolve_field
from sqld.registry import Registry, default_registry, get_model_metadata
from sqld.utils.logging import get_logger

log = get_logger(__name__)

Row = Dict[str, Any]


@dataclass
class _QueryPlan:
    metadata: ModelMetadata
    fields: List[Field]
    statement: Statement
    count: Optional[Statement] = None
    page: Optional[PaginationRequest] = None


def _context(registry: Optional[Registry], settings: Optional[Settings]):
    return registry or default_registry(), settings or get_settings()


def _plan_query(
    model: Any,
    request: Union[QueryRequest, Mapping[str, Any]],
    registry: Registry,
    settings: Settings,
) -> _QueryPlan:
    request = coerce_request(request, QueryRequest)
    metadata = get_model_metadata(model, registry, settings.lazy_registration)

    page = None
    count = None
    if request.pagination is not None:
        page = normalize_pagination(
            request.pagination, settings.default_page_size, settings.max_page_size
        )
        request = request.model_copy(update={"pagination": page})
        count = build_count_query(metadata, request, registry=registry)

    statement = build_query(
        metadata,
        request,
        registry=registry,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    if request.select == [SELECT_ALL]:
        fields = list(metadata.fields.values())
    else:
        fields = [metadata.fields[name] for name in request.select]
    return _QueryPlan(metadata, fields, statement, count, page)


def _output_fields(metadata: ModelMetadata, select_fields: Sequence[str]) -> List[Field]:
    if not select_fields:
        return list(metadata.fields.values())
    return [resolve_field(metadata, name, "select_fields") for name in select_fields]


def _scan(field: Field, raw: Any, registry: Registry) -> Any:
    factory = registry.get_scanner(field.declared_type)
    if factory is None and field.normalized.python_type is not None:
        factory = registry.get_scanner(field.normalized.python_type)
    if factory is None:
        return raw
    try:
        return factory().scan(raw)
    except Exception as exc:
        raise ExecutionError(
            f"failed to decode column {field.column_name!r}: {exc}",
            details={"field": field.external_name, "column": field.column_name},
        ) from exc


def shape_rows(rows: Sequence[Row], fields: Sequence[Field], registry: Registry) -> List[Row]:
    """Map ``{column: value}`` rows to ``{external_name: value}`` for the given fields."""
    shaped: List[Row] = []
    for row in rows:
        shaped.append(
            {
                f.external_name: _scan(f, row[f.column_name], registry)
                for f in fields
                if f.column_name in row
            }
        )
    return shaped


def _log_done(kind: str, table: str, start: float, **extra: Any) -> None:
    duration_ms = (time.perf_counter() - start) * 1000.0
    log.info(
        f"{kind} executed",
        extra={"table": table, "duration_ms": round(duration_ms, 3), **extra},
    )


def _log_failed(kind: str, exc: SqldError) -> None:
    log.warning(f"{kind} failed", extra={"code": exc.code, "error": exc.message})


def _check_rows(affected: int, require_rows: bool, metadata: ModelMetadata) -> int:
    if require_rows and affected == 0:
        raise ExecutionError(
            f"update of {metadata.table_name} matched no rows",
            details={"table": metadata.table_name, "rows_affected": 0},
        )
    return affected


def execute(
    db: Any,
    model: Any,
    request: Union[QueryRequest, Mapping[str, Any]],
    *,
    registry: Optional[Registry] = None,
    settings: Optional[Settings] = None,
) -> QueryResponse:
    """
    Validate, build and run a structured query on a psycopg handle.

    When the request is paginated a ``COUNT(*)`` over the same WHERE runs
    first and the response carries page metadata.
    """
    registry, settings = _context(registry, settings)
    start = time.perf_counter()
    try:
        plan = _plan_query(model, request, registry, settings)
        drivers.require_sync(db)
        meta = None
        if plan.count is not None and plan.page is not None:
            total = drivers.fetch_value(db, plan.count, settings.db_statement_timeout_ms)
            meta = build_response_meta(int(total or 0), plan.page.page_size, plan.page.page)
        rows = drivers.fetch_all(db, plan.statement, settings.db_statement_timeout_ms)
        data = shape_rows(rows, plan.fields, registry)
    except SqldError as exc:
        _log_failed("query", exc)
        raise
    _log_done("query", plan.metadata.table_name, start, rows=len(data))
    return QueryResponse(data=data, pagination=meta)


async def execute_async(
    db: Any,
    model: Any,
    request: Union[QueryRequest, Mapping[str, Any]],
    *,
    registry: Optional[Registry] = None,
    settings: Optional[Settings] = None,
) -> QueryResponse:
    """Asyncpg counterpart of :func:`execute`."""
    registry, settings = _context(registry, settings)
    start = time.perf_counter()
    try:
        plan = _plan_query(model, request, registry, settings)
        drivers.require_async(db)
        meta = None
        if plan.count is not None and plan.page is not None:
            total = await drivers.fetch_value_async(
                db, plan.count, settings.db_statement_timeout_ms
            )
            meta = build_response_meta(int(total or 0), plan.page.page_size, plan.page.page)
        rows = await drivers.fetch_all_async(db, plan.statement, settings.db_statement_timeout_ms)
        data = shape_rows(rows, plan.fields, registry)
    except SqldError as exc:
        _log_failed("query", exc)
        raise
    _log_done("query", plan.metadata.table_name, start, rows=len(data))
    return QueryResponse(data=data, pagination=meta)


def execute_update(
    db: Any,
    model: Any,
    request: Union[UpdateRequest, Mapping[str, Any]],
    *,
    require_rows: bool = False,
    registry: Optional[Registry] = None,
    settings: Optional[Settings] = None,
) -> int:
    """Run a structured update and return the number of rows affected."""
    registry, settings = _context(registry, settings)
    start = time.perf_counter()
    try:
        metadata = get_model_metadata(model, registry, settings.lazy_registration)
        statement = build_update(metadata, request, registry=registry)
        affected = drivers.execute_command(db, statement, settings.db_statement_timeout_ms)
        _check_rows(affected, require_rows, metadata)
    except SqldError as exc:
        _log_failed("update", exc)
        raise
    _log_done("update", metadata.table_name, start, rows_affected=affected)
    return affected


async def execute_update_async(
    db: Any,
    model: Any,
    request: Union[UpdateRequest, Mapping[str, Any]],
    *,
    require_rows: bool = False,
    registry: Optional[Registry] = None,
    settings: Optional[Settings] = None,
) -> int:
    registry, settings = _context(registry, settings)
    start = time.perf_counter()
    try:
        metadata = get_model_metadata(model, registry, settings.lazy_registration)
        statement = build_update(metadata, request, registry=registry)
        affected = await drivers.execute_command_async(
            db, statement, settings.db_statement_timeout_ms
        )
        _check_rows(affected, require_rows, metadata)
    except SqldError as exc:
        _log_failed("update", exc)
        raise
    _log_done("update", metadata.table_name, start, rows_affected=affected)
    return affected


def execute_raw(
    db: Any,
    params_spec: ParamsSpec,
    result_model: Any,
    request: Union[ExecuteRawRequest, Mapping[str, Any]],
    *,
    registry: Optional[Registry] = None,
    settings: Optional[Settings] = None,
) -> List[Row]:
    """
    Run a raw ``{{name}}`` SELECT on a psycopg handle.

    Parameters are checked against ``params_spec`` and rows are returned as
    ``{external_name: value}`` for the fields of ``result_model`` present in
    the result, restricted to ``select_fields`` when given.

    psycopg takes ``%s`` markers, so every ``$N`` in the rewritten query is
    converted, including one inside a string literal (``'$1'``), and a
    literal ``$N`` past the argument count is rejected. Pass such text as a
    ``{{name}}`` parameter instead.
    """
    registry, settings = _context(registry, settings)
    start = time.perf_counter()
    try:
        request = coerce_request(request, ExecuteRawRequest)
        statement = prepare_raw(params_spec, request)
        metadata = get_model_metadata(result_model, registry, settings.lazy_registration)
        fields = _output_fields(metadata, request.select_fields)
        rows = drivers.fetch_all(db, statement, settings.db_statement_timeout_ms)
        data = shape_rows(rows, fields, registry)
    except SqldError as exc:
        _log_failed("raw query", exc)
        raise
    _log_done("raw query", metadata.table_name, start, rows=len(data))
    return data


async def execute_raw_async(
    db: Any,
    params_spec: ParamsSpec,
    result_model: Any,
    request: Union[ExecuteRawRequest, Mapping[str, Any]],
    *,
    registry: Optional[Registry] = None,
    settings: Optional[Settings] = None,
) -> List[Row]:
    registry, settings = _context(registry, settings)
    start = time.perf_counter()
    try:
        request = coerce_request(request, ExecuteRawRequest)
        statement = prepare_raw(params_spec, request)
        metadata = get_model_metadata(result_model, registry, settings.lazy_registration)
        fields = _output_fields(metadata, request.select_fields)
        rows = await drivers.fetch_all_async(db, statement, settings.db_statement_timeout_ms)
        data = shape_rows(rows, fields, registry)
    except SqldError as exc:
        _log_failed("raw query", exc)
        raise
    _log_done("raw query", metadata.table_name, start, rows=len(data))
    return data


__all__ = [
    "execute",
    "execute_async",
    "execute_raw",
    "execute_raw_async",
    "execute_update",
    "execute_update_async",
    "shape_rows",
]
