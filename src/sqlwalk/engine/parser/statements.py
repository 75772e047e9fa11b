"""Canonical statement tree shared by the native and fallback parsers.

Only the shape that matters for dependency extraction is kept: FROM items,
joins, derived tables, set operations and CTEs. Projections, filters and
grouping are not represented.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class TableRef:
    """A base table reference, e.g. ``staging.orders``."""

    name: str  # qualified as written: "table", "schema.table" or "catalog.schema.table"
    alias: str | None = None


@dataclass(frozen=True)
class DerivedRef:
    """A subquery in a FROM clause."""

    query: Query
    alias: str | None = None


@dataclass(frozen=True)
class TableFunctionRef:
    """A FROM item that produces rows without reading a table (read_csv, VALUES, UNNEST)."""

    name: str
    alias: str | None = None


@dataclass(frozen=True)
class JoinRef:
    """Two FROM items joined together."""

    left: FromItem
    right: FromItem
    kind: str = "INNER"
    condition: str | None = None


FromItem = Union[TableRef, DerivedRef, TableFunctionRef, JoinRef]


@dataclass(frozen=True)
class Select:
    from_items: tuple[FromItem, ...] = ()


@dataclass(frozen=True)
class SetOperation:
    """UNION / INTERSECT / EXCEPT (and DuckDB's UNION BY NAME) of two operands."""

    op: str
    left: QueryBody
    right: QueryBody
    all: bool = False


QueryBody = Union[Select, SetOperation, "Query"]


@dataclass(frozen=True)
class Cte:
    name: str
    query: Query


@dataclass(frozen=True)
class Query:
    """A query body plus its WITH clause.

    ``sql`` holds the statement text for top-level queries; nested queries
    leave it empty.
    """

    body: QueryBody
    ctes: tuple[Cte, ...] = ()
    sql: str = field(default="", compare=False)


@dataclass(frozen=True)
class OtherStatement:
    """Any statement that is not a query (DDL, DML, PRAGMA, ...)."""

    kind: str
    sql: str = field(default="", compare=False)


Statement = Union[Query, SetOperation, OtherStatement]

SET_OPERATORS = frozenset({"UNION", "INTERSECT", "EXCEPT", "UNION_BY_NAME"})


def is_query(statement: Statement) -> bool:
    """True for statements whose result can be materialized."""
    return isinstance(statement, (Query, SetOperation))


def statement_sql(statement: Statement) -> str:
    return statement.sql if isinstance(statement, (Query, OtherStatement)) else ""
