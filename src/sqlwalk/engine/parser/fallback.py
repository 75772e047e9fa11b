"""sqlglot adapter, used when DuckDB's own parser cannot handle a file."""

from __future__ import annotations

import sqlglot
from sqlglot import exp

from sqlwalk.engine.errors import ParseError

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
)

_SET_OPERATORS: dict[type[exp.Expression], str] = {
    exp.Union: "UNION",
    exp.Intersect: "INTERSECT",
    exp.Except: "EXCEPT",
}


def read_dialect(dialect: str) -> str | None:
    """Map a dialect hint to a sqlglot read dialect (None = generic)."""
    return "duckdb" if dialect.lower() == "duckdb" else None


def parse_fallback(sql: str, dialect: str = "duckdb") -> list[Statement]:
    """Parse SQL with sqlglot and convert every statement."""
    read = read_dialect(dialect)
    try:
        expressions = sqlglot.parse(sql, read=read)
    except sqlglot.errors.SqlglotError as e:
        raise ParseError(f"Failed to parse SQL: {e}") from e

    statements: list[Statement] = []
    for expression in expressions:
        if expression is None:
            continue
        statements.append(convert_expression(expression, read))
    return statements


def convert_expression(expression: exp.Expression, dialect: str | None = None) -> Statement:
    """Convert one top-level sqlglot expression."""
    node = expression
    while isinstance(node, exp.Subquery) and not node.alias:
        node = node.this

    text = expression.sql(dialect=dialect)
    if isinstance(node, (exp.Query, exp.Pivot)):
        query = _convert_query(node)
        return Query(body=query.body, ctes=query.ctes, sql=text)
    return OtherStatement(kind=expression.key.upper(), sql=text)


def _convert_query(node: exp.Expression) -> Query:
    with_clause = node.args.get("with") or node.args.get("with_")
    ctes: list[Cte] = []
    if isinstance(with_clause, exp.With):
        for cte in with_clause.expressions:
            if isinstance(cte, exp.CTE):
                ctes.append(Cte(name=cte.alias_or_name, query=_convert_query(cte.this)))
    return Query(body=_convert_body(node), ctes=tuple(ctes))


def _convert_body(node: exp.Expression) -> QueryBody:
    if isinstance(node, exp.Subquery):
        return _convert_operand(node.this)
    if isinstance(node, exp.Select):
        return _convert_select(node)
    if isinstance(node, exp.Values):
        return Select()
    if isinstance(node, exp.Pivot):
        # Standalone PIVOT / UNPIVOT statement: reads its source relation
        if node.this is None:
            raise ParseError("PIVOT without a source relation")
        return Select(from_items=(_convert_relation(node.this),))
    if isinstance(node, (exp.Union, exp.Intersect, exp.Except)):
        op = _SET_OPERATORS.get(type(node))
        if op is None:
            raise ParseError(f"Unsupported set operation: {node.key}")
        if op == "UNION" and node.args.get("by_name"):
            op = "UNION_BY_NAME"
        return SetOperation(
            op=op,
            left=_convert_operand(node.left),
            right=_convert_operand(node.right),
            all=node.args.get("distinct") is False,
        )
    raise ParseError(f"Unsupported query body: {node.key}")


def _convert_operand(node: exp.Expression) -> QueryBody:
    query = _convert_query(node)
    return query if query.ctes else query.body


def _convert_select(select: exp.Select) -> Select:
    from_clause = select.args.get("from") or select.args.get("from_")
    relations: list[FromItem] = []
    if isinstance(from_clause, exp.From):
        relations.append(_convert_relation(from_clause.this))
        # Older sqlglot releases keep comma-separated tables here instead of in joins
        for extra in from_clause.expressions or []:
            relations.append(_convert_relation(extra))
    if not relations:
        return Select()

    item = relations[0]
    for extra in relations[1:]:
        item = JoinRef(left=item, right=extra, kind="CROSS")
    for join in select.args.get("joins") or []:
        on = join.args.get("on")
        kind = " ".join(part for part in (join.side, join.kind) if part) or "INNER"
        item = JoinRef(
            left=item,
            right=_convert_relation(join.this),
            kind=kind,
            condition=on.sql() if on is not None else None,
        )
    return Select(from_items=(item,))


def _convert_relation(relation: exp.Expression) -> FromItem:
    alias = relation.alias or None
    if isinstance(relation, exp.Table):
        if isinstance(relation.this, exp.Identifier):
            parts = (relation.catalog, relation.db, relation.name)
            return TableRef(name=".".join(p for p in parts if p), alias=alias)
        # read_csv(...), 'file.parquet' and friends
        function = relation.this
        name = getattr(function, "name", "") or (function.key if function is not None else "")
        return TableFunctionRef(name=name or "table_function", alias=alias)
    if isinstance(relation, exp.Subquery):
        return DerivedRef(query=_convert_query(relation.this), alias=alias)
    if isinstance(relation, exp.Lateral) and isinstance(relation.this, exp.Subquery):
        return DerivedRef(query=_convert_query(relation.this.this), alias=alias)
    if isinstance(relation, exp.Values):
        return TableFunctionRef(name="VALUES", alias=alias)
    if isinstance(relation, (exp.Unnest, exp.Lateral)):
        return TableFunctionRef(name=relation.key.upper(), alias=alias)
    raise ParseError(f"Unsupported FROM item: {relation.key}")
