"""
Record types and the metadata captured from them at registration.

A record type is a pydantic model deriving from :class:`Model` that exposes
``table_name()``. Queryable fields are declared with :func:`column`, which
records the external (JSON) name as the pydantic alias and the database
column name as field metadata:

    class Employee(Model):
        id: int = column("id", "id")
        full_name: str = column("name", "full_name")

        @classmethod
        def table_name(cls) -> str:
            return "employees"
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, List, Mapping, NamedTuple, Optional, Protocol, Type, runtime_checkable

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField

from sqld.domain.types import FieldType

COLUMN_KEY = "db"


@runtime_checkable
class TableModel(Protocol):
    """The one capability the engine needs from a record type."""

    @classmethod
    def table_name(cls) -> str: ...


class Model(BaseModel):
    """
    Base class for record types.

    Instances are immutable and can be built either from external names
    (aliases) or from attribute names.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    @classmethod
    def table_name(cls) -> str:
        raise NotImplementedError(f"{cls.__name__} does not define table_name()")


def column(json: str, db: str, default: Any = ..., **kwargs: Any) -> Any:
    """
    Declare a queryable field.

    ``json`` is the external name callers use; ``db`` is the table column.
    Remaining keyword arguments are passed through to ``pydantic.Field``.
    """
    extra = dict(kwargs.pop("json_schema_extra", None) or {})
    extra[COLUMN_KEY] = db
    if "default_factory" in kwargs:
        return PydanticField(alias=json, json_schema_extra=extra, **kwargs)
    return PydanticField(default, alias=json, json_schema_extra=extra, **kwargs)


class FieldSpec(NamedTuple):
    """One entry of a record type's schema descriptor."""

    attribute: str
    external_name: Optional[str]
    column_name: Optional[str]
    annotation: Any


def describe_fields(model: Type[BaseModel]) -> List[FieldSpec]:
    """Read the schema descriptor of a pydantic model, in declaration order."""
    specs: List[FieldSpec] = []
    for attribute, info in model.model_fields.items():
        extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
        column_name = extra.get(COLUMN_KEY)
        specs.append(
            FieldSpec(
                attribute=attribute,
                external_name=info.alias,
                column_name=column_name if isinstance(column_name, str) else None,
                annotation=info.annotation,
            )
        )
    return specs


@dataclass(frozen=True)
class ArrayDescriptor:
    element: FieldType


@dataclass(frozen=True)
class Field:
    """A queryable column of a registered record type."""

    external_name: str
    column_name: str
    attribute: str
    declared_type: Any
    normalized: FieldType
    array: Optional[ArrayDescriptor] = None

    @property
    def nullable(self) -> bool:
        return self.normalized.nullable


@dataclass(frozen=True)
class ModelMetadata:
    """
    Table name and fields of a registered record type.

    ``fields`` is keyed by external name and keeps declaration order; it is
    exposed read-only so metadata cannot change after registration.
    """

    model: type
    table_name: str
    fields: Mapping[str, Field]

    def __post_init__(self) -> None:
        if not isinstance(self.fields, MappingProxyType):
            object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def field(self, external_name: str) -> Optional[Field]:
        return self.fields.get(external_name)

    def by_column(self, column_name: str) -> Optional[Field]:
        for f in self.fields.values():
            if f.column_name == column_name:
                return f
        return None

    @property
    def external_names(self) -> List[str]:
        return list(self.fields)

    @property
    def columns(self) -> List[str]:
        return [f.column_name for f in self.fields.values()]


__all__ = [
    "ArrayDescriptor",
    "Field",
    "FieldSpec",
    "Model",
    "ModelMetadata",
    "TableModel",
    "column",
    "describe_fields",
]
