"""
Request and response shapes.

These mirror the JSON bodies callers send: field references are external
(JSON) names, never column names. Shapes are deliberately permissive at
parse time (an unknown operator or a negative limit still parses) so that
every semantic problem is reported by the validator with a typed error.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sqld.domain.types import FieldKind
from sqld.errors import OperatorError

# Select sentinel meaning "every registered field".
SELECT_ALL = "ALL"

_ALIASES = {"<>": "!=", "==": "="}


class Operator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    # value equals any element of an array column
    ANY = "ANY"
    # array column contains every element of the given array
    CONTAINS = "CONTAINS"

    @classmethod
    def parse(cls, raw: Union["Operator", str], field: Optional[str] = None) -> "Operator":
        if isinstance(raw, Operator):
            return raw
        if not isinstance(raw, str):
            raise OperatorError(f"invalid operator {raw!r}", operator=raw, field=field)
        text = " ".join(raw.upper().split())
        text = _ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            raise OperatorError(
                f"unsupported operator {raw!r}" + (f" on field {field!r}" if field else ""),
                operator=raw,
                field=field,
            ) from None

    @property
    def is_null_check(self) -> bool:
        return self in (Operator.IS_NULL, Operator.IS_NOT_NULL)

    @property
    def takes_sequence(self) -> bool:
        return self in (Operator.IN, Operator.NOT_IN, Operator.CONTAINS)

    @property
    def is_array_operator(self) -> bool:
        return self in (Operator.ANY, Operator.CONTAINS)

    @property
    def allowed_kinds(self) -> Optional[FrozenSet[FieldKind]]:
        """Normalized kinds this operator accepts, or ``None`` for every kind."""
        return OPERATOR_KINDS[self]

    def allows(self, kind: FieldKind) -> bool:
        allowed = OPERATOR_KINDS[self]
        return allowed is None or kind in allowed


_ORDERED = frozenset(
    {FieldKind.INTEGER, FieldKind.FLOAT, FieldKind.STRING, FieldKind.TIMESTAMP, FieldKind.ANY}
)
_TEXT = frozenset({FieldKind.STRING, FieldKind.ANY})
_ARRAY = frozenset({FieldKind.ARRAY})

OPERATOR_KINDS: Dict[Operator, Optional[FrozenSet[FieldKind]]] = {
    Operator.EQ: None,
    Operator.NE: None,
    Operator.IS_NULL: None,
    Operator.IS_NOT_NULL: None,
    Operator.IN: None,
    Operator.NOT_IN: None,
    Operator.GT: _ORDERED,
    Operator.LT: _ORDERED,
    Operator.GE: _ORDERED,
    Operator.LE: _ORDERED,
    Operator.LIKE: _TEXT,
    Operator.ILIKE: _TEXT,
    Operator.ANY: _ARRAY,
    Operator.CONTAINS: _ARRAY,
}


class Condition(BaseModel):
    """A single ``field operator value`` predicate; value is ignored for null checks."""

    field: str
    operator: Union[Operator, str]
    value: Any = None


class OrderByClause(BaseModel):
    field: str
    desc: bool = False


class PaginationRequest(BaseModel):
    """
    Page-based paging. Pages start at 1 and a missing, null or non-positive
    page means the first one; a missing or non-positive page size means the
    default, and sizes above the maximum are clamped.
    """

    page: Optional[int] = 1
    page_size: Optional[int] = Field(
        None, validation_alias=AliasChoices("page_size", "pageSize")
    )


class PaginationResponse(BaseModel):
    page: int
    page_size: int
    total_items: int
    total_pages: int


class QueryRequest(BaseModel):
    """
    Structured SELECT against one table.

    ``pagination`` takes precedence over ``limit``/``offset`` when present.
    """

    model_config = ConfigDict(populate_by_name=True)

    select: List[str] = Field(default_factory=list)
    where: List[Condition] = Field(default_factory=list)
    order_by: List[OrderByClause] = Field(
        default_factory=list, validation_alias=AliasChoices("order_by", "orderBy")
    )
    pagination: Optional[PaginationRequest] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


class UpdateRequest(BaseModel):
    """Structured UPDATE; both ``set`` and ``where`` are required to be non-empty."""

    set: Dict[str, Any] = Field(default_factory=dict)
    where: List[Condition] = Field(default_factory=list)


class ExecuteRawRequest(BaseModel):
    """Raw SELECT with ``{{name}}`` placeholders."""

    model_config = ConfigDict(populate_by_name=True)

    query: str
    params: Dict[str, Any] = Field(default_factory=dict)
    select_fields: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("select_fields", "selectFields")
    )


class QueryResponse(BaseModel):
    data: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: Optional[PaginationResponse] = None
    error: Optional[str] = None


RequestT = TypeVar("RequestT", bound=BaseModel)


def coerce_request(request: Union[RequestT, Mapping[str, Any]], model: Type[RequestT]) -> RequestT:
    """Accept either a request object or its JSON-like mapping."""
    if isinstance(request, model):
        return request
    return model.model_validate(request)


__all__ = [
    "Condition",
    "ExecuteRawRequest",
    "OPERATOR_KINDS",
    "Operator",
    "OrderByClause",
    "PaginationRequest",
    "PaginationResponse",
    "QueryRequest",
    "QueryResponse",
    "SELECT_ALL",
    "UpdateRequest",
    "coerce_request",
]
