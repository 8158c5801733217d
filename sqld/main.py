from __future__ import annotations

import importlib
import json
import sys
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import typer

from sqld.config import get_settings
from sqld.errors import SqldError
from sqld.executor import execute, execute_update
from sqld.infrastructure.db_factory import get_sync_pool
from sqld.query.builder import build_query, build_update
from sqld.query.raw import (
    bind_params,
    check_params,
    extract_placeholders,
    rewrite_placeholders,
    validate_sql_shape,
)
from sqld.query.statement import Statement
from sqld.registry import get_model_metadata
from sqld.reporter import print_error, print_placeholders, print_rows, print_statement
from sqld.utils.logging import configure_logging

app = typer.Typer(help="sqld: validate and build parameterized SQL from structured requests.")


def _load_model(path: str) -> type:
    """Import a record type given as ``package.module:ClassName``."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"expected 'module:Class', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"cannot import {module_name!r}: {exc}") from exc
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise typer.BadParameter(f"{module_name!r} has no attribute {attr!r}") from exc


def _load_json(text: str, what: str) -> Dict[str, Any]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{what} is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise typer.BadParameter(f"{what} must be a JSON object")
    return value


def _fail(exc: SqldError) -> NoReturn:
    print_error(exc)
    raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"env={settings.app_env} timeout_ms={settings.db_statement_timeout_ms} | "
        f"page_size={settings.default_page_size} max_page_size={settings.max_page_size} "
        f"lazy_registration={settings.lazy_registration}"
    )


@app.command()
def check(
    query: str = typer.Argument(..., help="SQL with {{name}} placeholders."),
    params: Optional[str] = typer.Option(
        None,
        "--params",
        "-p",
        help='Parameter values as a JSON object, e.g. \'{"id": 25}\'.',
    ),
) -> None:
    """
    Run the raw-query checks and print the rewritten SQL.
    """
    configure_logging(level=get_settings().log_level, json_logs=get_settings().log_json)
    try:
        placeholders = extract_placeholders(query)
        args = []
        if params is not None:
            values = _load_json(params, "--params")
            check_params(placeholders, values)
            args = bind_params(None, placeholders, values)
        sql = rewrite_placeholders(query, placeholders)
        validate_sql_shape(sql)
    except SqldError as exc:
        _fail(exc)

    print_placeholders(placeholders)
    print_statement(Statement(sql, args))


@app.command()
def build(
    model: str = typer.Argument(..., help="Record type as 'package.module:ClassName'."),
    request_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON request body."
    ),
    update: bool = typer.Option(False, "--update", "-u", help="Treat the request as an update."),
    run: bool = typer.Option(
        False, "--execute", "-x", help="Run the statement through the connection pool."
    ),
) -> None:
    """
    Validate a structured request against MODEL and print the SQL it builds.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    model_cls = _load_model(model)
    request = _load_json(request_file.read_text(encoding="utf-8"), str(request_file))

    try:
        metadata = get_model_metadata(model_cls)
        if update:
            statement = build_update(metadata, request)
        else:
            statement = build_query(
                metadata,
                request,
                default_page_size=settings.default_page_size,
                max_page_size=settings.max_page_size,
            )
        print_statement(statement)

        if run:
            pool = get_sync_pool()
            if update:
                affected = execute_update(pool, model_cls, request)
                typer.echo(f"{affected} row(s) affected.")
            else:
                response = execute(pool, model_cls, request)
                print_rows(response.data)
                if response.pagination is not None:
                    typer.echo(json.dumps(response.pagination.model_dump()))
    except SqldError as exc:
        _fail(exc)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
