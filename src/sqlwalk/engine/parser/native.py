"""DuckDB native parser adapter.

DuckDB serializes SELECT statements to JSON with ``json_serialize_sql``. This
module converts that JSON into the canonical statement tree. Conversion fails
closed: any node it does not explicitly understand raises
``UnsupportedNodeType`` so the caller retries with sqlglot instead of losing
dependency information.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any

import duckdb

from sqlwalk.engine.errors import ParseError, UnsupportedNodeType

from .statements import (
    SET_OPERATORS,
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

logger = logging.getLogger("sqlwalk.parser")


@lru_cache(maxsize=1)
def _parser_connection() -> duckdb.DuckDBPyConnection:
    # Parsing never touches data, an in-memory database is enough.
    return duckdb.connect(":memory:")


def parse_native(sql: str) -> list[Statement]:
    """Parse SQL with DuckDB's own parser.

    Statements are split by DuckDB, SELECT statements are serialized to JSON
    and converted, everything else becomes an ``OtherStatement``.
    """
    conn = _parser_connection()
    try:
        extracted = conn.extract_statements(sql)
    except duckdb.Error as e:
        raise ParseError(f"DuckDB parser error: {e}") from e

    statements: list[Statement] = []
    for stmt in extracted:
        text = _clean_statement_text(stmt.query)
        if stmt.type != duckdb.StatementType.SELECT:
            statements.append(OtherStatement(kind=stmt.type.name, sql=text))
            continue
        try:
            row = conn.execute("SELECT json_serialize_sql(?)", [text]).fetchone()
        except duckdb.Error as e:
            raise ParseError(f"json_serialize_sql failed: {e}") from e
        if row is None or row[0] is None:
            raise ParseError("json_serialize_sql returned no result")
        try:
            ast = json.loads(row[0])
        except json.JSONDecodeError as e:
            raise ParseError(f"Malformed DuckDB AST JSON: {e}") from e
        logger.debug("DuckDB AST: %s", row[0])
        converted = convert_ast(ast)
        if len(converted) != 1:
            raise ParseError(f"Expected one serialized statement, got {len(converted)}")
        query = converted[0]
        statements.append(Query(body=query.body, ctes=query.ctes, sql=text))
    return statements


def _clean_statement_text(text: str) -> str:
    return text.strip().rstrip(";").strip()


def convert_ast(ast: Any) -> list[Query]:
    """Convert the JSON document produced by ``json_serialize_sql``."""
    if not isinstance(ast, dict):
        raise ParseError("DuckDB AST is not a JSON object")
    if ast.get("error"):
        message = ast.get("error_message") or "unknown error"
        raise ParseError(f"DuckDB parser error: {message}")

    raw_statements = ast.get("statements")
    if not isinstance(raw_statements, list):
        raise ParseError("DuckDB AST does not contain a statements array")

    queries: list[Query] = []
    for raw in raw_statements:
        node = raw.get("node") if isinstance(raw, dict) else None
        if not isinstance(node, dict):
            raise ParseError("DuckDB AST statement is missing its node object")
        queries.append(_convert_query_node(node))
    return queries


def _require(node: Any, key: str, owner: str) -> Any:
    if not isinstance(node, dict):
        raise ParseError(f"{owner} is not an object")
    if key not in node or node[key] is None:
        raise ParseError(f"{owner} missing required field '{key}'")
    return node[key]


def _convert_query_node(node: dict[str, Any]) -> Query:
    """Convert a QueryNode (SELECT or set operation) with its CTE map."""
    return Query(body=_convert_body(node), ctes=_convert_cte_map(node))


def _convert_body(node: dict[str, Any]) -> QueryBody:
    node_type = node.get("type")
    if not isinstance(node_type, str):
        raise ParseError("DuckDB AST node missing type field")

    if node_type == "SELECT_NODE":
        _require(node, "select_list", "SELECT_NODE")
        from_table = node.get("from_table")
        from_items: tuple[FromItem, ...] = ()
        if from_table is not None:
            item = _convert_table_ref(from_table)
            if item is not None:
                from_items = (item,)
        return Select(from_items=from_items)

    if node_type == "SET_OPERATION_NODE":
        return _convert_set_operation(node)

    raise UnsupportedNodeType(node_type)


def _convert_set_operation(node: dict[str, Any]) -> SetOperation:
    setop_type = _require(node, "setop_type", "SET_OPERATION_NODE")
    if setop_type not in SET_OPERATORS:
        raise UnsupportedNodeType(str(setop_type), "set operation")
    setop_all = bool(node.get("setop_all", False))

    if "children" in node and node["children"]:
        operands = [_convert_operand(child) for child in node["children"]]
    else:
        operands = [
            _convert_operand(_require(node, "left", "SET_OPERATION_NODE")),
            _convert_operand(_require(node, "right", "SET_OPERATION_NODE")),
        ]
    if len(operands) < 2:
        raise ParseError("SET_OPERATION_NODE needs at least two operands")

    # Newer DuckDB versions flatten chains of the same operator into children.
    result = SetOperation(op=setop_type, left=operands[0], right=operands[1], all=setop_all)
    for operand in operands[2:]:
        result = SetOperation(op=setop_type, left=result, right=operand, all=setop_all)
    return result


def _convert_operand(node: Any) -> QueryBody:
    if not isinstance(node, dict):
        raise ParseError("Set operation operand is not an object")
    query = _convert_query_node(node)
    if query.ctes:
        return query
    return query.body


def _convert_cte_map(node: dict[str, Any]) -> tuple[Cte, ...]:
    cte_map = node.get("cte_map")
    if not cte_map:
        return ()
    entries = cte_map.get("map") if isinstance(cte_map, dict) else None
    if entries is None:
        raise ParseError("cte_map is missing its map array")

    ctes: list[Cte] = []
    for entry in entries:
        name = _require(entry, "key", "cte_map entry")
        info = _require(entry, "value", "cte_map entry")
        inner = _require(info, "query", f"CTE '{name}'")
        inner_node = _require(inner, "node", f"CTE '{name}'")
        ctes.append(Cte(name=name, query=_convert_query_node(inner_node)))
    return tuple(ctes)


def _alias(ref: dict[str, Any]) -> str | None:
    return ref.get("alias") or None


def _convert_table_ref(ref: dict[str, Any]) -> FromItem | None:
    """Convert a TableRef. Returns None for an empty FROM clause."""
    if not isinstance(ref, dict):
        raise ParseError("DuckDB AST table reference is not an object")
    ref_type = ref.get("type")
    if ref_type == "EMPTY":
        return None

    if ref_type == "BASE_TABLE":
        table_name = _require(ref, "table_name", "BASE_TABLE")
        parts = [ref.get("catalog_name") or "", ref.get("schema_name") or "", table_name]
        return TableRef(name=".".join(p for p in parts if p), alias=_alias(ref))

    if ref_type == "JOIN":
        left = _convert_table_ref(_require(ref, "left", "JOIN"))
        right = _convert_table_ref(_require(ref, "right", "JOIN"))
        if left is None or right is None:
            raise ParseError("JOIN with an empty side")
        condition = ref.get("condition")
        return JoinRef(
            left=left,
            right=right,
            kind=ref.get("join_type") or "INNER",
            condition=json.dumps(condition, sort_keys=True) if condition else None,
        )

    if ref_type == "SUBQUERY":
        subquery = _require(ref, "subquery", "SUBQUERY")
        inner = _require(subquery, "node", "SUBQUERY")
        return DerivedRef(query=_convert_query_node(inner), alias=_alias(ref))

    if ref_type == "TABLE_FUNCTION":
        function = ref.get("function") or {}
        name = function.get("function_name") or "table_function"
        return TableFunctionRef(name=name, alias=_alias(ref))

    if ref_type == "EXPRESSION_LIST":
        return TableFunctionRef(name="VALUES", alias=_alias(ref))

    if ref_type == "PIVOT":
        # FROM t PIVOT (...) and FROM t UNPIVOT (...) read their source
        source = _convert_table_ref(_require(ref, "source", "PIVOT"))
        if source is None:
            raise ParseError("PIVOT with an empty source")
        return source

    raise UnsupportedNodeType(str(ref_type), "table reference")
