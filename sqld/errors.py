"""
Error types raised by sqld.

Every failure is reported as a subclass of :class:`SqldError` carrying a
stable machine ``code``, a human message naming the offending field,
operator or parameter, and a ``details`` dict for structured logging or API
responses. Validation failures are always raised before any SQL reaches a
database.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class SqldError(Exception):
    """Base class for every error raised by sqld."""

    code: str = "SQLD_ERROR"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class RegistrationError(SqldError):
    """A record type could not be turned into model metadata."""

    code = "REGISTRATION_ERROR"


class NotRegisteredError(SqldError):
    """Metadata was requested for a record type that was never registered."""

    code = "MODEL_NOT_REGISTERED"

    def __init__(self, model: type) -> None:
        super().__init__(
            f"model {model.__name__} not registered",
            details={"model": model.__qualname__},
        )
        self.model = model


class RequestValidationError(SqldError):
    """Base class for problems found in a request before SQL is built."""

    code = "VALIDATION_ERROR"


class FieldReferenceError(RequestValidationError):
    """A request referenced a field the model does not declare."""

    code = "UNKNOWN_FIELD"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        clause: Optional[str] = None,
        valid_fields: Optional[Iterable[str]] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if field is not None:
            details["field"] = field
        if clause is not None:
            details["clause"] = clause
        if valid_fields is not None:
            details["valid_fields"] = list(valid_fields)
        super().__init__(message, details=details)
        self.field = field
        self.clause = clause


class OperatorError(RequestValidationError):
    """Unknown operator, or an operator the field's type does not support."""

    code = "INVALID_OPERATOR"

    def __init__(self, message: str, *, operator: Any, field: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"operator": str(operator)}
        if field is not None:
            details["field"] = field
        super().__init__(message, details=details)
        self.operator = operator
        self.field = field


class ValueTypeError(RequestValidationError):
    """A literal or parameter value does not fit the declared type."""

    code = "TYPE_MISMATCH"

    def __init__(self, message: str, *, field: str, expected: str, actual: str) -> None:
        super().__init__(
            message,
            details={"field": field, "expected": expected, "actual": actual},
        )
        self.field = field
        self.expected = expected
        self.actual = actual


class ParameterError(RequestValidationError):
    """Named parameters do not line up with the placeholders in a raw query."""

    code = "PARAMETER_MISMATCH"

    def __init__(
        self,
        message: str,
        *,
        missing: Iterable[str] = (),
        extra: Iterable[str] = (),
    ) -> None:
        self.missing = sorted(missing)
        self.extra = sorted(extra)
        details: Dict[str, Any] = {}
        if self.missing:
            details["missing"] = self.missing
        if self.extra:
            details["extra"] = self.extra
        super().__init__(message, details=details)


class SqlShapeError(RequestValidationError):
    """A raw query is not exactly one parseable SELECT statement."""

    code = "INVALID_SQL"

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message, details={"reason": reason})
        self.reason = reason


class PaginationBoundError(RequestValidationError):
    """Negative limit or offset."""

    code = "INVALID_PAGINATION"


class MutationSafetyError(RequestValidationError):
    """An update without a SET or WHERE clause."""

    code = "UNSAFE_MUTATION"


class ExecutionError(SqldError):
    """The database driver failed, or an update touched no rows when rows were required."""

    code = "EXECUTION_ERROR"


class UnsupportedDriverError(SqldError):
    """The executor was handed a database handle it does not know how to drive."""

    code = "UNSUPPORTED_DRIVER"

    def __init__(self, handle: Any, *, hint: Optional[str] = None) -> None:
        handle_type = type(handle)
        message = f"unsupported database type: {handle_type.__module__}.{handle_type.__qualname__}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message, details={"type": type(handle).__qualname__})


__all__ = [
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
]
