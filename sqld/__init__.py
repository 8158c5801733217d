"""
sqld - metadata-driven validation and construction of parameterized SQL.

Callers describe a query or update against a single table as a declarative
request (selected fields, filter conditions, ordering, pagination) or as raw
SQL with ``{{name}}`` placeholders. Requests are validated against metadata
captured from registered record types before any SQL is produced:

- unknown or mistyped field names are rejected
- values whose type does not fit the column's declared type are rejected
- raw SQL must be exactly one SELECT
- updates must carry both SET and WHERE

Validated requests become positional ``$1, $2, ...`` statements that the
executor runs on psycopg or asyncpg handles.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from sqld.config import Settings, get_settings
from sqld.domain.models import Model, ModelMetadata, TableModel, column
from sqld.domain.requests import (
    SELECT_ALL,
    Condition,
    ExecuteRawRequest,
    Operator,
    OrderByClause,
    PaginationRequest,
    PaginationResponse,
    QueryRequest,
    QueryResponse,
    UpdateRequest,
)
from sqld.errors import (
    ExecutionError,
    FieldReferenceError,
    MutationSafetyError,
    NotRegisteredError,
    OperatorError,
    PaginationBoundError,
    ParameterError,
    RegistrationError,
    RequestValidationError,
    SqldError,
    SqlShapeError,
    UnsupportedDriverError,
    ValueTypeError,
)
from sqld.executor import (
    execute,
    execute_async,
    execute_raw,
    execute_raw_async,
    execute_update,
    execute_update_async,
)
from sqld.query import (
    Statement,
    build_count_query,
    build_query,
    build_update,
    prepare_raw,
    validate_query,
    validate_update,
)
from sqld.registry import (
    Registry,
    default_registry,
    get_model_metadata,
    register,
    register_converter,
    register_scanner,
    set_default_registry,
)
from sqld.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Record types
    "Model",
    "ModelMetadata",
    "TableModel",
    "column",
    # Registry
    "Registry",
    "default_registry",
    "get_model_metadata",
    "register",
    "register_converter",
    "register_scanner",
    "set_default_registry",
    # Requests
    "SELECT_ALL",
    "Condition",
    "ExecuteRawRequest",
    "Operator",
    "OrderByClause",
    "PaginationRequest",
    "PaginationResponse",
    "QueryRequest",
    "QueryResponse",
    "UpdateRequest",
    # Building
    "Statement",
    "build_count_query",
    "build_query",
    "build_update",
    "prepare_raw",
    "validate_query",
    "validate_update",
    # Execution
    "execute",
    "execute_async",
    "execute_raw",
    "execute_raw_async",
    "execute_update",
    "execute_update_async",
    # Errors
    "ExecutionError",
    "FieldReferenceError",
    "MutationSafetyError",
    "NotRegisteredError",
    "OperatorError",
    "PaginationBoundError",
    "ParameterError",
    "RegistrationError",
    "RequestValidationError",
    "SqlShapeError",
    "SqldError",
    "UnsupportedDriverError",
    "ValueTypeError",
    # Logging
    "configure_logging",
    "get_logger",
]
