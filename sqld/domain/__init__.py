"""
Domain package for sqld.

Exports record-type helpers, the normalized type system and the request
shapes. Keep this package focused on data definitions; validation against
metadata lives in ``sqld.query``.
"""

from sqld.domain.models import Field, FieldSpec, Model, ModelMetadata, TableModel, column
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
from sqld.domain.types import FieldKind, FieldType, is_compatible, normalize

__all__ = [
    "Condition",
    "ExecuteRawRequest",
    "Field",
    "FieldKind",
    "FieldSpec",
    "FieldType",
    "Model",
    "ModelMetadata",
    "Operator",
    "OrderByClause",
    "PaginationRequest",
    "PaginationResponse",
    "QueryRequest",
    "QueryResponse",
    "SELECT_ALL",
    "TableModel",
    "UpdateRequest",
    "column",
    "is_compatible",
    "normalize",
]
