"""
Type compatibility checker.

Collapses declared annotations and runtime values into a small set of
canonical kinds so that structurally different but semantically equivalent
types (``Optional[int]`` and ``int``, a ``str``-based enum and ``str``,
``Decimal`` and ``float``) are interchangeable when validating requests.

Nothing here raises; call sites turn a ``False`` into a ``ValueTypeError``
that names the field, the expected kind and the actual type.
"""

from __future__ import annotations

import types
from collections import abc
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Tuple, Union, get_args, get_origin
from uuid import UUID


class FieldKind(str, Enum):
    STRING = "string"
    BOOL = "bool"
    INTEGER = "integer"
    FLOAT = "float"
    TIMESTAMP = "timestamp"
    ARRAY = "array"
    ANY = "any"
    OTHER = "other"
    # Only produced for runtime values, never for a declared field.
    NULL = "null"

    @property
    def is_numeric(self) -> bool:
        return self in (FieldKind.INTEGER, FieldKind.FLOAT)


@dataclass(frozen=True)
class FieldType:
    """
    Normalized type of a field or value.

    ``element`` is set for arrays; ``None`` on an array value means the
    element type is unknown (a heterogeneous collection) and every element
    has to be checked on its own. ``python_type`` is kept for ``other`` so
    that values can still be matched with ``isinstance``.
    """

    kind: FieldKind
    element: Optional["FieldType"] = None
    nullable: bool = False
    python_type: Optional[type] = None

    @property
    def is_numeric(self) -> bool:
        return self.kind.is_numeric

    @property
    def is_array(self) -> bool:
        return self.kind is FieldKind.ARRAY

    def __str__(self) -> str:
        if self.kind is FieldKind.ARRAY and self.element is not None:
            text = f"array[{self.element}]"
        elif self.kind is FieldKind.OTHER and self.python_type is not None:
            text = self.python_type.__name__
        else:
            text = self.kind.value
        return f"{text} | null" if self.nullable else text


ANY_TYPE = FieldType(FieldKind.ANY)

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset)


def _unwrap(annotation: Any) -> Tuple[Any, bool]:
    """Strip ``Annotated`` and ``Optional`` wrappers, reporting nullability."""
    nullable = False
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation = get_args(annotation)[0]
            continue
        if origin is Union or origin is types.UnionType:
            members = get_args(annotation)
            concrete = [m for m in members if m is not type(None)]
            if len(concrete) != len(members):
                nullable = True
            if len(concrete) == 1:
                annotation = concrete[0]
                continue
        return annotation, nullable


def _is_sequence_origin(origin: Any) -> bool:
    if not isinstance(origin, type):
        return False
    if issubclass(origin, (str, bytes, bytearray)):
        return False
    return issubclass(origin, (abc.Sequence, abc.Set))


def _normalize_literal(values: Tuple[Any, ...]) -> FieldKind:
    if all(isinstance(v, bool) for v in values):
        return FieldKind.BOOL
    if all(isinstance(v, str) for v in values):
        return FieldKind.STRING
    if all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return FieldKind.INTEGER
    return FieldKind.ANY


def _normalize_class(annotation: type) -> FieldType:
    # bool is an int subclass, so it has to be checked first.
    if issubclass(annotation, bool):
        return FieldType(FieldKind.BOOL, python_type=annotation)
    if issubclass(annotation, int):
        return FieldType(FieldKind.INTEGER, python_type=annotation)
    if issubclass(annotation, (float, Decimal)):
        return FieldType(FieldKind.FLOAT, python_type=annotation)
    if issubclass(annotation, (str, UUID)):
        return FieldType(FieldKind.STRING, python_type=annotation)
    if issubclass(annotation, (datetime, date)):
        return FieldType(FieldKind.TIMESTAMP, python_type=annotation)
    if _is_sequence_origin(annotation):
        return FieldType(FieldKind.ARRAY, element=ANY_TYPE, python_type=annotation)
    if annotation is object:
        return ANY_TYPE
    return FieldType(FieldKind.OTHER, python_type=annotation)


def normalize(annotation: Any) -> FieldType:
    """
    Map a declared annotation to its normalized ``FieldType``.

    - ``Optional[T]`` / ``T | None`` -> normalize(T) with ``nullable=True``
    - ``int`` and ``IntEnum`` -> integer; ``float`` and ``Decimal`` -> float
    - ``str``, ``str`` enums, string ``Literal`` and ``UUID`` -> string
    - ``datetime`` and ``date`` -> timestamp
    - ``list[T]``, ``tuple[T, ...]``, ``set[T]``, ``Sequence[T]`` -> array of normalize(T)
    - ``Any`` and unions of several types -> any
    - everything else -> other, matched with ``isinstance``
    """
    annotation, nullable = _unwrap(annotation)

    if annotation is Any:
        base = ANY_TYPE
    else:
        origin = get_origin(annotation)
        if origin is Union or origin is types.UnionType:
            base = ANY_TYPE
        elif origin is Literal:
            base = FieldType(_normalize_literal(get_args(annotation)))
        elif origin is not None and _is_sequence_origin(origin):
            args = [a for a in get_args(annotation) if a is not Ellipsis]
            element = normalize(args[0]) if args else ANY_TYPE
            base = FieldType(FieldKind.ARRAY, element=element, python_type=origin)
        elif origin is not None:
            python_type = origin if isinstance(origin, type) else None
            base = FieldType(FieldKind.OTHER, python_type=python_type)
        elif isinstance(annotation, type):
            base = _normalize_class(annotation)
        else:
            base = FieldType(FieldKind.OTHER)

    if nullable:
        return FieldType(base.kind, base.element, True, base.python_type)
    return base


def is_sequence_value(value: Any) -> bool:
    """True for lists, tuples and sets; strings, bytes and mappings are scalars here."""
    if isinstance(value, (str, bytes, bytearray, abc.Mapping)):
        return False
    return isinstance(value, (abc.Sequence, abc.Set))


def type_of(value: Any) -> FieldType:
    """Tag a runtime value with its normalized kind."""
    if value is None:
        return FieldType(FieldKind.NULL)
    if isinstance(value, bool):
        return FieldType(FieldKind.BOOL, python_type=type(value))
    if isinstance(value, int):
        return FieldType(FieldKind.INTEGER, python_type=type(value))
    if isinstance(value, (float, Decimal)):
        return FieldType(FieldKind.FLOAT, python_type=type(value))
    if isinstance(value, (str, UUID)):
        return FieldType(FieldKind.STRING, python_type=type(value))
    if isinstance(value, (datetime, date)):
        return FieldType(FieldKind.TIMESTAMP, python_type=type(value))
    if is_sequence_value(value):
        return FieldType(FieldKind.ARRAY, python_type=type(value))
    return FieldType(FieldKind.OTHER, python_type=type(value))


def types_compatible(declared: FieldType, actual: FieldType) -> bool:
    """
    Decide whether a value of normalized type ``actual`` may be bound to ``declared``.

    An array with an unknown element type is accepted here; the caller is
    expected to check its elements one by one (see ``is_compatible``).
    """
    if declared.kind is FieldKind.ANY or actual.kind is FieldKind.ANY:
        return True
    if actual.kind is FieldKind.NULL:
        return declared.nullable
    if declared.kind is FieldKind.OTHER:
        if declared.python_type is None or actual.python_type is None:
            return False
        return issubclass(actual.python_type, declared.python_type)
    if declared.is_numeric and actual.is_numeric:
        return True
    if declared.kind is FieldKind.ARRAY:
        if actual.kind is not FieldKind.ARRAY:
            return False
        if declared.element is None or actual.element is None:
            return True
        return types_compatible(declared.element, actual.element)
    return declared.kind is actual.kind


def is_compatible(declared: FieldType, value: Any) -> bool:
    """Value-level check; sequences bound to array fields are checked per element."""
    if declared.kind is FieldKind.ANY:
        return True
    if value is None:
        return declared.nullable
    if declared.kind is FieldKind.ARRAY:
        if not is_sequence_value(value):
            return False
        element = declared.element or ANY_TYPE
        return all(is_compatible(element, item) for item in value)
    if declared.kind is FieldKind.OTHER:
        return declared.python_type is not None and isinstance(value, declared.python_type)
    return types_compatible(declared, type_of(value))


def describe_value(value: Any) -> str:
    """Short description of a value's type for error messages."""
    if value is None:
        return "null"
    return f"{type_of(value)} ({type(value).__name__})"


__all__ = [
    "ANY_TYPE",
    "FieldKind",
    "FieldType",
    "describe_value",
    "is_compatible",
    "is_sequence_value",
    "normalize",
    "type_of",
    "types_compatible",
]
