"""
Model registry.

Holds, per registered record type, the table name and the external-name ->
column mapping captured from its schema descriptor, plus two auxiliary maps:
scanner factories (custom decoding of column values read from the database)
and converters (adapting caller values before they are bound).

A process-wide default registry is available through :func:`default_registry`;
tests construct isolated :class:`Registry` instances. Lookups run
concurrently; registration is exclusive with lookups and with itself, so a
metadata entry is never observable half-built.
"""
from __future__ import annotations

import re
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Type, Union

from pydantic import BaseModel

from sqld.config import get_settings
from sqld.domain.models import ArrayDescriptor, Field, ModelMetadata, describe_fields
from sqld.domain.types import FieldKind, normalize
from sqld.errors import NotRegisteredError, RegistrationError
from sqld.utils.logging import get_logger

log = get_logger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")

# A scanner factory returns an object whose ``scan(raw)`` decodes a column value.
ScannerFactory = Callable[[], Any]
Converter = Callable[[Any], Any]


class _ReadWriteLock:
    """Many concurrent readers, one exclusive writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


def _model_class(model: Union[type, Any]) -> type:
    return model if isinstance(model, type) else type(model)


def _is_identifier(name: str, qualified: bool = False) -> bool:
    parts = name.split(".") if qualified else [name]
    return all(_IDENTIFIER_RE.match(p) for p in parts)


def build_metadata(model: type) -> ModelMetadata:
    """
    Scan a record type into ``ModelMetadata``.

    Raises ``RegistrationError`` on the first problem; nothing is returned
    for a partially valid model.
    """
    name = getattr(model, "__name__", repr(model))
    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise RegistrationError(
            f"{name} is not a pydantic model", details={"model": name}
        )

    table_name = getattr(model, "table_name", None)
    if not callable(table_name):
        raise RegistrationError(
            f"{name} does not provide table_name()", details={"model": name}
        )
    try:
        table = table_name()
    except NotImplementedError as exc:
        raise RegistrationError(str(exc), details={"model": name}) from exc
    if not isinstance(table, str) or not table:
        raise RegistrationError(
            f"{name}.table_name() returned an empty table name", details={"model": name}
        )
    if not _is_identifier(table, qualified=True):
        raise RegistrationError(
            f"{name}.table_name() returned an invalid identifier {table!r}",
            details={"model": name, "table": table},
        )

    fields: Dict[str, Field] = {}
    seen_columns: Dict[str, str] = {}
    for spec in describe_fields(model):
        details = {"model": name, "field": spec.attribute}
        if not spec.column_name:
            raise RegistrationError(
                f"field {spec.attribute!r} of {name} is missing a column name", details=details
            )
        if not spec.external_name:
            raise RegistrationError(
                f"field {spec.attribute!r} of {name} is missing an external name", details=details
            )
        if not _is_identifier(spec.column_name):
            raise RegistrationError(
                f"field {spec.attribute!r} of {name} has an invalid column name "
                f"{spec.column_name!r}",
                details=details,
            )
        if spec.external_name in fields:
            raise RegistrationError(
                f"external name {spec.external_name!r} is used twice in {name}", details=details
            )
        if spec.column_name in seen_columns:
            raise RegistrationError(
                f"column {spec.column_name!r} is mapped by both "
                f"{seen_columns[spec.column_name]!r} and {spec.external_name!r} in {name}",
                details=details,
            )

        normalized = normalize(spec.annotation)
        array = None
        if normalized.kind is FieldKind.ARRAY:
            array = ArrayDescriptor(element=normalized.element)
        fields[spec.external_name] = Field(
            external_name=spec.external_name,
            column_name=spec.column_name,
            attribute=spec.attribute,
            declared_type=spec.annotation,
            normalized=normalized,
            array=array,
        )
        seen_columns[spec.column_name] = spec.external_name

    if not fields:
        raise RegistrationError(f"{name} declares no queryable fields", details={"model": name})

    return ModelMetadata(model=model, table_name=table, fields=fields)


class Registry:
    """Registered record types plus scanner and converter maps."""

    def __init__(self) -> None:
        self._lock = _ReadWriteLock()
        self._models: Dict[type, ModelMetadata] = {}
        self._scanners: Dict[type, ScannerFactory] = {}
        self._converters: Dict[type, Converter] = {}

    def register(self, model: Union[type, Any]) -> ModelMetadata:
        """
        Register a record type (class or instance) and return its metadata.

        Registering the same class again is a no-op that returns the
        metadata captured the first time.
        """
        cls = _model_class(model)
        with self._lock.write():
            existing = self._models.get(cls)
            if existing is not None:
                return existing
            metadata = build_metadata(cls)
            self._models[cls] = metadata
        log.debug(
            "registered model",
            extra={
                "model": cls.__qualname__,
                "table": metadata.table_name,
                "fields": len(metadata.fields),
            },
        )
        return metadata

    def get_metadata(self, model: Union[type, Any]) -> ModelMetadata:
        cls = _model_class(model)
        with self._lock.read():
            metadata = self._models.get(cls)
        if metadata is None:
            raise NotRegisteredError(cls)
        return metadata

    def resolve(self, model: Union[type, Any]) -> ModelMetadata:
        """Like ``get_metadata`` but registers the model on first miss."""
        try:
            return self.get_metadata(model)
        except NotRegisteredError:
            return self.register(model)

    def is_registered(self, model: Union[type, Any]) -> bool:
        with self._lock.read():
            return _model_class(model) in self._models

    def register_scanner(self, type_: type, factory: ScannerFactory) -> None:
        with self._lock.write():
            self._scanners[type_] = factory

    def get_scanner(self, type_: type) -> Optional[ScannerFactory]:
        with self._lock.read():
            return self._scanners.get(type_)

    def register_converter(self, type_: type, converter: Converter) -> None:
        with self._lock.write():
            self._converters[type_] = converter

    def get_converter(self, type_: type) -> Optional[Converter]:
        with self._lock.read():
            return self._converters.get(type_)


_default_registry = Registry()
_default_lock = threading.Lock()


def default_registry() -> Registry:
    return _default_registry


def set_default_registry(registry: Registry) -> Registry:
    """Swap the process-wide registry; returns the previous one."""
    global _default_registry
    with _default_lock:
        previous, _default_registry = _default_registry, registry
    return previous


def register(model: Union[type, Any]) -> ModelMetadata:
    return default_registry().register(model)


def register_scanner(type_: type, factory: ScannerFactory) -> None:
    default_registry().register_scanner(type_, factory)


def register_converter(type_: type, converter: Converter) -> None:
    default_registry().register_converter(type_, converter)


def get_model_metadata(
    model: Union[Type[BaseModel], Any],
    registry: Optional[Registry] = None,
    lazy: Optional[bool] = None,
) -> ModelMetadata:
    """
    Metadata for ``model``, registering it on first use when lazy registration
    is on (``lazy`` defaults to the ``LAZY_REGISTRATION`` setting).
    """
    registry = registry or default_registry()
    if lazy is None:
        lazy = get_settings().lazy_registration
    if lazy:
        return registry.resolve(model)
    return registry.get_metadata(model)


__all__ = [
    "Converter",
    "Registry",
    "ScannerFactory",
    "build_metadata",
    "default_registry",
    "get_model_metadata",
    "register",
    "register_converter",
    "register_scanner",
    "set_default_registry",
]
