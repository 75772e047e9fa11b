"""SQL parsing: DuckDB's native parser first, sqlglot as the fallback.

    from sqlwalk.engine.parser import parse_sql, Query, TableRef, ...
"""

from __future__ import annotations

import logging

from sqlwalk.engine.errors import ParseError

from .fallback import parse_fallback
from .native import convert_ast, parse_native
from .statements import (
    Cte,
    DerivedRef,
    FromItem,
    JoinRef,
    OtherStatement,
    Query,
    QueryBody,
    Select,
    SetOperation,
    Statement,
    TableFunctionRef,
    TableRef,
    is_query,
    statement_sql,
)

logger = logging.getLogger("sqlwalk.parser")


def parse_sql(sql: str, dialect: str = "duckdb") -> list[Statement]:
    """Parse SQL text into canonical statements.

    With the ``duckdb`` dialect the native parser is tried first; its failure
    is logged at debug level and never surfaced. The fallback parser's error
    is the one raised when both fail.
    """
    if dialect.lower() == "duckdb":
        try:
            return parse_native(sql)
        except ParseError as e:
            logger.debug("DuckDB parser failed, falling back to sqlglot: %s", e)
    return parse_fallback(sql, dialect)


__all__ = [
    "Cte",
    "DerivedRef",
    "FromItem",
    "JoinRef",
    "OtherStatement",
    "Query",
    "QueryBody",
    "Select",
    "SetOperation",
    "Statement",
    "TableFunctionRef",
    "TableRef",
    "convert_ast",
    "is_query",
    "parse_fallback",
    "parse_native",
    "parse_sql",
    "statement_sql",
]
