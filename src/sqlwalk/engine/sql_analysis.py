"""SQL analysis over the canonical statement tree.

Provides table reference extraction for dependency resolution, plus parsing
of the ``-- @config:`` directive comments that carry per-unit output settings.
"""

from __future__ import annotations

import logging
import re

import yaml
from pydantic import ValidationError

from sqlwalk.config import ModelConfig
from sqlwalk.engine.parser import (
    Cte,
    DerivedRef,
    FromItem,
    JoinRef,
    OtherStatement,
    Query,
    Select,
    SetOperation,
    Statement,
    TableRef,
)

logger = logging.getLogger("sqlwalk.parser")

# --- Config directive comments ---

CONFIG_PATTERN = re.compile(r"^\s*--\s*@config:\s*(.+)$")


def extract_config(sql: str) -> ModelConfig | None:
    """Parse ``-- @config: {output: {type: view}}`` lines into a ModelConfig.

    The directive body is YAML. When several lines are present, a later
    ``output`` replaces an earlier one. Lines that fail to parse are logged and
    skipped. Returns None when no directive parsed.
    """
    config: ModelConfig | None = None
    for line in sql.splitlines():
        match = CONFIG_PATTERN.match(line)
        if not match:
            continue
        try:
            raw = yaml.safe_load(match.group(1))
            parsed = ModelConfig.model_validate(raw or {})
        except (yaml.YAMLError, ValidationError) as e:
            logger.warning("Failed to parse @config directive %r: %s", match.group(1), e)
            continue
        if config is None:
            config = parsed
        elif parsed.output is not None:
            config.output = parsed.output
    return config


def strip_config_comments(sql: str) -> str:
    """Remove ``-- @config:`` lines and surrounding blank lines, return the query."""
    lines = [line for line in sql.split("\n") if not CONFIG_PATTERN.match(line)]
    while lines and not lines[0].strip():
        lines.pop(0)
    return "\n".join(lines).strip().rstrip(";").rstrip()


# --- Table reference extraction ---


def extract_tables(statement: Statement) -> set[str]:
    """Return the base tables a statement reads.

    Recurses into derived tables, joins, set operations and every CTE body.
    References that resolve to a CTE in scope are not base tables and are left
    out; a CTE body sees the CTEs defined before it and its own name. The
    caller still removes the unit's own name. Non-query statements contribute
    nothing.
    """
    tables: set[str] = set()
    if isinstance(statement, OtherStatement):
        return tables
    _visit_body(statement, tables, frozenset())
    return tables


def _visit_body(
    node: Query | Select | SetOperation,
    tables: set[str],
    scope: frozenset[str],
) -> None:
    if isinstance(node, Query):
        visible = set(scope)
        for cte in node.ctes:
            _visit_cte(cte, tables, frozenset(visible))
            visible.add(cte.name.lower())
        _visit_body(node.body, tables, frozenset(visible))
    elif isinstance(node, Select):
        for item in node.from_items:
            _visit_from_item(item, tables, scope)
    elif isinstance(node, SetOperation):
        _visit_body(node.left, tables, scope)
        _visit_body(node.right, tables, scope)


def _visit_cte(cte: Cte, tables: set[str], scope: frozenset[str]) -> None:
    # A CTE referencing its own alias is a recursive self reference, never a table.
    _visit_body(cte.query, tables, scope | {cte.name.lower()})


def _visit_from_item(item: FromItem, tables: set[str], scope: frozenset[str]) -> None:
    # Table functions (read_csv, VALUES, UNNEST) read no table.
    if isinstance(item, TableRef):
        if item.name.lower() not in scope:
            tables.add(item.name)
    elif isinstance(item, DerivedRef):
        _visit_body(item.query, tables, scope)
    elif isinstance(item, JoinRef):
        _visit_from_item(item.left, tables, scope)
        _visit_from_item(item.right, tables, scope)


def extract_dependencies(statements: list[Statement], own_name: str) -> set[str]:
    """Union the tables of every statement, minus the unit's own name."""
    deps: set[str] = set()
    for statement in statements:
        deps |= extract_tables(statement)
    return {dep for dep in deps if dep.lower() != own_name.lower()}
