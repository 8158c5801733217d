"""
Raw query pipeline.

Turns a SQL string with ``{{name}}`` placeholders plus a parameter map into
a positional ``$N`` statement, one step at a time:

1. extract the distinct placeholder names in first-occurrence order
2. reject missing and extra parameters
3. check every value against the declared parameter types
4. rewrite ``{{name}}`` to ``$k`` (repeats reuse the same ``$k``)
5. require the result to parse as exactly one SELECT

The first failing step raises; execution and result shaping live in
:mod:`sqld.executor`.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Union

import sqlparse
from pydantic import BaseModel
from sqlparse import tokens as T

from sqld.domain.models import describe_fields
from sqld.domain.requests import ExecuteRawRequest, coerce_request
from sqld.domain.types import FieldType, describe_value, is_compatible, normalize
from sqld.errors import ParameterError, RegistrationError, SqlShapeError, ValueTypeError
from sqld.query.statement import Statement
from sqld.utils.logging import get_logger

log = get_logger(__name__)

NAMED_PARAM_RE = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")

# Keywords that make a statement data-modifying even when it starts with WITH.
_MUTATING_KEYWORDS = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE"})

ParamsSpec = Union[type, Mapping[str, Any], None]


def extract_placeholders(query: str) -> List[str]:
    """Distinct placeholder names in first-occurrence order."""
    seen: Dict[str, None] = {}
    for match in NAMED_PARAM_RE.finditer(query):
        seen.setdefault(match.group(1), None)
    return list(seen)


def check_params(placeholders: List[str], params: Mapping[str, Any]) -> None:
    """Both directions: every placeholder needs a value and every value a placeholder."""
    expected = set(placeholders)
    missing = expected - set(params)
    extra = set(params) - expected
    if not missing and not extra:
        return
    parts = []
    if missing:
        parts.append(f"missing parameters: {', '.join(sorted(missing))}")
    if extra:
        parts.append(f"unexpected parameters: {', '.join(sorted(extra))}")
    raise ParameterError("; ".join(parts), missing=missing, extra=extra)


def describe_params(params_spec: ParamsSpec) -> Optional[Dict[str, FieldType]]:
    """
    Declared parameter types keyed by placeholder name.

    ``params_spec`` is a pydantic model whose ``column()`` names match the
    placeholders, a ``{name: annotation}`` mapping, or ``None`` to accept
    values of any type.
    """
    if params_spec is None:
        return None
    if isinstance(params_spec, Mapping):
        return {name: normalize(annotation) for name, annotation in params_spec.items()}
    if isinstance(params_spec, type) and issubclass(params_spec, BaseModel):
        declared: Dict[str, FieldType] = {}
        for spec in describe_fields(params_spec):
            if not spec.column_name:
                continue
            if not spec.external_name:
                raise RegistrationError(
                    f"parameter field {spec.attribute!r} of {params_spec.__name__} "
                    "has a column name but no external name",
                    details={"model": params_spec.__name__, "field": spec.attribute},
                )
            declared[spec.column_name] = normalize(spec.annotation)
        return declared
    raise TypeError(f"unsupported parameter descriptor: {params_spec!r}")


def bind_params(
    declared: Optional[Mapping[str, FieldType]],
    placeholders: List[str],
    params: Mapping[str, Any],
) -> List[Any]:
    """Type-check each value and return the positional argument list."""
    args: List[Any] = []
    for name in placeholders:
        if name not in params:
            raise ParameterError(f"missing parameter {name!r}", missing=[name])
        value = params[name]
        if declared is not None:
            expected = declared.get(name)
            if expected is None:
                raise ParameterError(f"no type declared for parameter {name!r}")
            if not is_compatible(expected, value):
                actual = describe_value(value)
                raise ValueTypeError(
                    f"parameter {name!r} must be {expected}, got {actual}",
                    field=name,
                    expected=str(expected),
                    actual=actual,
                )
        args.append(value)
    return args


def rewrite_placeholders(query: str, placeholders: List[str]) -> str:
    positions = {name: index for index, name in enumerate(placeholders, start=1)}

    def _sub(match: "re.Match[str]") -> str:
        position = positions.get(match.group(1))
        return f"${position}" if position is not None else match.group(0)

    return NAMED_PARAM_RE.sub(_sub, query)


def _is_blank(statement: sqlparse.sql.Statement) -> bool:
    first = statement.token_first(skip_ws=True, skip_cm=True)
    return first is None or first.ttype is T.Punctuation


def validate_sql_shape(sql: str) -> None:
    """Accept exactly one SELECT statement; raise ``SqlShapeError`` otherwise."""
    statements = [s for s in sqlparse.parse(sql or "") if not _is_blank(s)]
    if not statements:
        raise SqlShapeError("empty SQL query", reason="empty")
    if len(statements) > 1:
        raise SqlShapeError(
            f"expected a single statement, got {len(statements)}", reason="multiple"
        )

    statement = statements[0]
    kind = statement.get_type()
    if kind == "UNKNOWN":
        first = statement.token_first(skip_ws=True, skip_cm=True)
        raise SqlShapeError(
            f"SQL syntax error near {first.value!r}" if first is not None else "SQL syntax error",
            reason="syntax",
        )
    if kind != "SELECT":
        raise SqlShapeError(
            f"only SELECT statements are allowed, got {kind}", reason="not_select"
        )
    for token in statement.flatten():
        if token.ttype is T.DDL or (
            token.ttype is T.DML and token.normalized in _MUTATING_KEYWORDS
        ):
            raise SqlShapeError(
                f"only SELECT statements are allowed, found {token.normalized}",
                reason="not_select",
            )
        if token.ttype is T.Keyword and token.normalized == "INTO":
            # SELECT ... INTO creates a table.
            raise SqlShapeError(
                "SELECT ... INTO is not allowed, it creates a table", reason="not_select"
            )


def prepare_raw(
    params_spec: ParamsSpec,
    request: Union[ExecuteRawRequest, Mapping[str, Any]],
) -> Statement:
    """Run steps 1 to 5 and return the positional statement."""
    request = coerce_request(request, ExecuteRawRequest)
    placeholders = extract_placeholders(request.query)
    check_params(placeholders, request.params)
    args = bind_params(describe_params(params_spec), placeholders, request.params)
    sql = rewrite_placeholders(request.query, placeholders)
    validate_sql_shape(sql)
    log.debug("prepared raw query", extra={"sql": sql, "params": placeholders})
    return Statement(sql, args)


__all__ = [
    "NAMED_PARAM_RE",
    "bind_params",
    "check_params",
    "describe_params",
    "extract_placeholders",
    "prepare_raw",
    "rewrite_placeholders",
    "validate_sql_shape",
]
