"""
Parameterized SQL serializer.

Turns a table name, columns and ``(column, operator, value)`` predicates into
SQL text with positional ``$1, $2, ...`` placeholders and the matching
argument list. Statements are composed with ``psycopg.sql``: tables and
columns are always quoted with ``sql.Identifier`` so reserved words and
mixed-case names survive, and values are always bound, never interpolated.

Placeholders are numbered in output order: WHERE values first, then LIMIT,
then OFFSET for selects; SET values before WHERE values for updates.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, NamedTuple, Optional, Tuple

from psycopg import sql

from sqld.domain.requests import Operator
from sqld.errors import MutationSafetyError

_COMPARISON_SQL = {
    Operator.EQ: "=",
    Operator.NE: "<>",
    Operator.GT: ">",
    Operator.LT: "<",
    Operator.GE: ">=",
    Operator.LE: "<=",
    Operator.LIKE: "LIKE",
    Operator.ILIKE: "ILIKE",
}

_EMPTY = sql.SQL("")
_COMMA = sql.SQL(", ")


class Statement(NamedTuple):
    sql: str
    args: List[Any]


class _Params:
    def __init__(self) -> None:
        self.values: List[Any] = []

    def bind(self, value: Any) -> sql.SQL:
        self.values.append(value)
        return sql.SQL(f"${len(self.values)}")


def _table(name: str) -> sql.Identifier:
    # "schema.table" is quoted part by part.
    return sql.Identifier(*name.split("."))


def _render(query: sql.Composable, params: _Params) -> Statement:
    return Statement(query.as_string(), params.values)


@dataclass(frozen=True)
class Predicate:
    column: str
    operator: Operator
    value: Any = None


def _render_predicate(predicate: Predicate, params: _Params) -> sql.Composable:
    col, op = sql.Identifier(predicate.column), predicate.operator
    if op is Operator.IS_NULL:
        return sql.SQL("{} IS NULL").format(col)
    if op is Operator.IS_NOT_NULL:
        return sql.SQL("{} IS NOT NULL").format(col)
    if op in (Operator.IN, Operator.NOT_IN):
        values = list(predicate.value)
        if not values:
            # Nothing is IN an empty list; everything is NOT IN it.
            return sql.SQL("(1=0)" if op is Operator.IN else "(1=1)")
        placeholders = _COMMA.join([params.bind(v) for v in values])
        return sql.SQL("{} {} ({})").format(col, sql.SQL(op.value), placeholders)
    if op is Operator.ANY:
        return sql.SQL("{} = ANY({})").format(params.bind(predicate.value), col)
    if op is Operator.CONTAINS:
        return sql.SQL("{} @> {}").format(col, params.bind(list(predicate.value)))
    return sql.SQL("{} {} {}").format(
        col, sql.SQL(_COMPARISON_SQL[op]), params.bind(predicate.value)
    )


def _render_where(predicates: List[Predicate], params: _Params) -> sql.Composable:
    if not predicates:
        return _EMPTY
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(
        [_render_predicate(p, params) for p in predicates]
    )


@dataclass
class SelectStatement:
    table: str
    columns: List[str]
    where: List[Predicate] = field(default_factory=list)
    order_by: List[Tuple[str, bool]] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None

    def to_sql(self) -> Statement:
        if not self.columns:
            raise ValueError("select statement needs at least one column")
        params = _Params()
        query = sql.SQL("SELECT {} FROM {}").format(
            _COMMA.join([sql.Identifier(col) for col in self.columns]), _table(self.table)
        )
        query += _render_where(self.where, params)
        if self.order_by:
            query += sql.SQL(" ORDER BY ") + _COMMA.join(
                [
                    sql.SQL("{} {}").format(
                        sql.Identifier(col), sql.SQL("DESC" if desc else "ASC")
                    )
                    for col, desc in self.order_by
                ]
            )
        if self.limit is not None:
            query += sql.SQL(" LIMIT ") + params.bind(self.limit)
        if self.offset is not None:
            query += sql.SQL(" OFFSET ") + params.bind(self.offset)
        return _render(query, params)

    def to_count_sql(self) -> Statement:
        """``SELECT COUNT(*)`` over the same WHERE, ignoring ordering and paging."""
        params = _Params()
        query = sql.SQL("SELECT COUNT(*) FROM {}").format(_table(self.table))
        query += _render_where(self.where, params)
        return _render(query, params)


@dataclass
class UpdateStatement:
    table: str
    assignments: List[Tuple[str, Any]]
    where: List[Predicate]

    def to_sql(self) -> Statement:
        if not self.assignments or not self.where:
            raise MutationSafetyError(
                f"refusing to serialize an update of {self.table} without SET and WHERE",
                details={"table": self.table},
            )
        params = _Params()
        sets = _COMMA.join(
            [
                sql.SQL("{} = {}").format(sql.Identifier(col), params.bind(value))
                for col, value in self.assignments
            ]
        )
        query = sql.SQL("UPDATE {} SET {}").format(_table(self.table), sets)
        query += _render_where(self.where, params)
        return _render(query, params)


__all__ = ["Predicate", "SelectStatement", "Statement", "UpdateStatement"]
