"""
Parameterized SQL compilation for the relational backend.

Turns table names, ``Filter`` trees and payload dicts into PostgreSQL
statements with numbered ``$n`` placeholders.  Values only ever travel as
bound parameters; identifiers are validated and double-quoted before they
are interpolated.

Examples:
    >>> q = compile_select("services", SelectOptions(where={"price": {"gte": 1000}}, limit=10))
    >>> q.sql
    'SELECT * FROM "services" WHERE "price" >= $1 OFFSET $2 ROWS FETCH NEXT $3 ROWS ONLY'
    >>> q.params
    (1000, 0, 10)

Tags:
    coastline, sql, query-compilation, asyncpg, postgresql

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from coastline.core.errors import TranslationError
from coastline.core.filters import (
    Filter,
    Operator,
    OrderTerm,
    SelectOptions,
    parse_columns,
    parse_order_by,
    parse_where,
    validate_identifier,
)

_COMPARATORS = {
    Operator.EQ: "=",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    sql: str
    params: tuple[Any, ...] = ()


class SqlBuilder:
    """Allocates ``$n`` placeholders in the order values are bound."""

    def __init__(self) -> None:
        self.params: list[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"

    def build(self, sql: str) -> CompiledQuery:
        return CompiledQuery(sql, tuple(self.params))


def quote_identifier(name: str, kind: str = "column") -> str:
    return f'"{validate_identifier(name, kind)}"'


def _compile_predicate(column: str, op: Operator, value: Any, builder: SqlBuilder) -> str:
    col = quote_identifier(column)
    if op is Operator.EQ and value is None:
        return f"{col} IS NULL"
    if op is Operator.IN:
        return f"{col} = ANY({builder.bind(list(value))})"
    return f"{col} {_COMPARATORS[op]} {builder.bind(value)}"


def compile_where(where: Filter, builder: SqlBuilder) -> str:
    """Render `` WHERE ...`` (with leading space), or ``""`` for an empty filter."""
    if not where:
        return ""
    clauses = [_compile_predicate(p.column, p.op, p.value, builder) for p in where]
    return " WHERE " + " AND ".join(clauses)


def compile_order_by(terms: tuple[OrderTerm, ...]) -> str:
    if not terms:
        return ""
    rendered = ", ".join(f"{quote_identifier(t.column)} {'DESC' if t.descending else 'ASC'}" for t in terms)
    return f" ORDER BY {rendered}"


def compile_select(table: str, options: SelectOptions) -> CompiledQuery:
    """Compile a ``select``.  Join hints have no relational rendering."""
    if options.join:
        raise TranslationError(
            f"Join hints {list(options.join)!r} are not supported by the relational backend"
        )
    tbl = quote_identifier(table, "table")
    columns = parse_columns(options.select)
    projection = "*" if columns is None else ", ".join(quote_identifier(c) for c in columns)

    builder = SqlBuilder()
    sql = f"SELECT {projection} FROM {tbl}"
    sql += compile_where(parse_where(options.where), builder)
    sql += compile_order_by(parse_order_by(options.order_by))

    page = options.page()
    if page is not None:
        limit, offset = page
        sql += f" OFFSET {builder.bind(offset)} ROWS FETCH NEXT {builder.bind(limit)} ROWS ONLY"
    return builder.build(sql)


def compile_count(table: str, where: Mapping[str, Any] | None) -> CompiledQuery:
    """``SELECT COUNT(*)`` over the same filter, ignoring pagination."""
    builder = SqlBuilder()
    sql = f"SELECT COUNT(*) AS count FROM {quote_identifier(table, 'table')}"
    sql += compile_where(parse_where(where), builder)
    return builder.build(sql)


def compile_insert(table: str, data: Mapping[str, Any]) -> CompiledQuery:
    tbl = quote_identifier(table, "table")
    if not data:
        return CompiledQuery(f"INSERT INTO {tbl} DEFAULT VALUES RETURNING *")
    builder = SqlBuilder()
    columns = ", ".join(quote_identifier(c) for c in data)
    values = ", ".join(builder.bind(v) for v in data.values())
    return builder.build(f"INSERT INTO {tbl} ({columns}) VALUES ({values}) RETURNING *")


def compile_update(table: str, data: Mapping[str, Any], where: Filter) -> CompiledQuery:
    if not data:
        raise TranslationError(f"Update on {table!r} has no columns to set")
    tbl = quote_identifier(table, "table")
    builder = SqlBuilder()
    assignments = ", ".join(f"{quote_identifier(c)} = {builder.bind(v)}" for c, v in data.items())
    sql = f"UPDATE {tbl} SET {assignments}"
    sql += compile_where(where, builder)
    return builder.build(sql + " RETURNING *")


def compile_delete(table: str, where: Filter) -> CompiledQuery:
    builder = SqlBuilder()
    sql = f"DELETE FROM {quote_identifier(table, 'table')}"
    sql += compile_where(where, builder)
    return builder.build(sql + " RETURNING *")


__all__ = [
    "CompiledQuery",
    "SqlBuilder",
    "quote_identifier",
    "compile_where",
    "compile_order_by",
    "compile_select",
    "compile_count",
    "compile_insert",
    "compile_update",
    "compile_delete",
]
