"""
Query construction for sqld.

Validation, the structured builder, the raw ``{{name}}`` pipeline and the
pagination helpers. Everything here is a pure function of a request and a
metadata snapshot; nothing touches a database.
"""

from sqld.query.builder import build_count_query, build_query, build_update
from sqld.query.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    build_response_meta,
    calculate_offset,
    normalize_pagination,
)
from sqld.query.raw import (
    extract_placeholders,
    prepare_raw,
    rewrite_placeholders,
    validate_sql_shape,
)
from sqld.query.statement import Statement
from sqld.query.validator import validate_query, validate_update

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "Statement",
    "build_count_query",
    "build_query",
    "build_response_meta",
    "build_update",
    "calculate_offset",
    "extract_placeholders",
    "normalize_pagination",
    "prepare_raw",
    "rewrite_placeholders",
    "validate_query",
    "validate_sql_shape",
    "validate_update",
]
