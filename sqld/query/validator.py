"""
Request validator.

Checks structured requests against registered metadata before any SQL is
built. Each function raises the first violation it finds as a subclass of
``RequestValidationError``; a request that passes can be built without any
further checks.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence, Tuple

from sqld.domain.models import Field, ModelMetadata
from sqld.domain.requests import (
    SELECT_ALL,
    Condition,
    Operator,
    OrderByClause,
    QueryRequest,
    UpdateRequest,
)
from sqld.domain.types import ANY_TYPE, FieldType, describe_value, is_compatible, is_sequence_value
from sqld.errors import (
    FieldReferenceError,
    MutationSafetyError,
    OperatorError,
    PaginationBoundError,
    ValueTypeError,
)


def resolve_field(metadata: ModelMetadata, name: str, clause: str) -> Field:
    """Look up a field by external name or raise ``FieldReferenceError``."""
    field = metadata.field(name)
    if field is None:
        raise FieldReferenceError(
            f"unknown field {name!r} in {clause} for table {metadata.table_name}",
            field=name,
            clause=clause,
            valid_fields=metadata.external_names,
        )
    return field


def _check_value(name: str, expected: FieldType, value: Any, what: str = "value") -> None:
    if not is_compatible(expected, value):
        actual = describe_value(value)
        raise ValueTypeError(
            f"{what} for field {name!r} must be {expected}, got {actual}",
            field=name,
            expected=str(expected),
            actual=actual,
        )


def _check_elements(name: str, op: Operator, expected: FieldType, value: Any) -> None:
    if not is_sequence_value(value):
        actual = describe_value(value)
        raise ValueTypeError(
            f"operator {op.value} on field {name!r} needs a list of values, got {actual}",
            field=name,
            expected=f"array[{expected}]",
            actual=actual,
        )
    for index, item in enumerate(value):
        _check_value(name, expected, item, what=f"element {index} of {op.value} list")


def validate_select(select: Sequence[str], metadata: ModelMetadata) -> None:
    if not select:
        raise FieldReferenceError("select must name at least one field", clause="select")
    if SELECT_ALL in select:
        if len(select) != 1:
            raise FieldReferenceError(
                f"{SELECT_ALL!r} cannot be combined with other fields in select",
                field=SELECT_ALL,
                clause="select",
            )
        return
    for name in select:
        resolve_field(metadata, name, "select")


def validate_condition(
    condition: Condition, metadata: ModelMetadata, clause: str = "where"
) -> Tuple[Field, Operator]:
    """Validate one predicate and return the resolved field and operator."""
    name = condition.field
    field = resolve_field(metadata, name, clause)
    op = Operator.parse(condition.operator, field=name)

    if not op.allows(field.normalized.kind):
        raise OperatorError(
            f"operator {op.value} is not supported for field {name!r} of type {field.normalized}",
            operator=op.value,
            field=name,
        )

    value = condition.value
    if op.is_null_check:
        if value is not None:
            actual = describe_value(value)
            raise ValueTypeError(
                f"operator {op.value} on field {name!r} takes no value, got {actual}",
                field=name,
                expected="no value",
                actual=actual,
            )
        return field, op

    if value is None:
        raise ValueTypeError(
            f"operator {op.value} on field {name!r} needs a value; "
            "use IS NULL or IS NOT NULL to compare with null",
            field=name,
            expected=str(field.normalized),
            actual="null",
        )

    element = field.array.element if field.array is not None else ANY_TYPE
    if op in (Operator.IN, Operator.NOT_IN):
        _check_elements(name, op, field.normalized, value)
    elif op is Operator.ANY:
        _check_value(name, element, value)
    elif op is Operator.CONTAINS:
        _check_elements(name, op, element, value)
    else:
        _check_value(name, field.normalized, value)
    return field, op


def validate_conditions(
    conditions: Iterable[Condition], metadata: ModelMetadata, clause: str = "where"
) -> None:
    for condition in conditions:
        validate_condition(condition, metadata, clause)


def validate_order_by(order_by: Iterable[OrderByClause], metadata: ModelMetadata) -> None:
    for clause in order_by:
        resolve_field(metadata, clause.field, "order_by")


def validate_bounds(limit: Optional[int], offset: Optional[int]) -> None:
    if limit is not None and limit < 0:
        raise PaginationBoundError(
            f"limit must be non-negative, got {limit}", details={"limit": limit}
        )
    if offset is not None and offset < 0:
        raise PaginationBoundError(
            f"offset must be non-negative, got {offset}", details={"offset": offset}
        )


def validate_query(request: QueryRequest, metadata: ModelMetadata) -> None:
    validate_select(request.select, metadata)
    validate_conditions(request.where, metadata)
    validate_order_by(request.order_by, metadata)
    validate_bounds(request.limit, request.offset)


def validate_update(request: UpdateRequest, metadata: ModelMetadata) -> None:
    """
    Validate an update. ``set`` and ``where`` must both be non-empty so that
    no request can produce an UPDATE touching the whole table.
    """
    if not request.set:
        raise MutationSafetyError(
            f"update of {metadata.table_name} must set at least one field",
            details={"table": metadata.table_name, "clause": "set"},
        )
    if not request.where:
        raise MutationSafetyError(
            f"update of {metadata.table_name} requires a where clause",
            details={"table": metadata.table_name, "clause": "where"},
        )
    for name, value in request.set.items():
        field = resolve_field(metadata, name, "set")
        _check_value(name, field.normalized, value)
    validate_conditions(request.where, metadata)


__all__ = [
    "resolve_field",
    "validate_bounds",
    "validate_condition",
    "validate_conditions",
    "validate_order_by",
    "validate_query",
    "validate_select",
    "validate_update",
]
