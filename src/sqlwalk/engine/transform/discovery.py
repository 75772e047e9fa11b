"""Workspace discovery, dependency map and execution order."""

from __future__ import annotations

import logging
import os
from graphlib import CycleError as GraphCycleError
from graphlib import TopologicalSorter
from pathlib import Path

from sqlwalk.engine.database import replace_env_vars
from sqlwalk.engine.errors import (
    CycleError,
    DuplicateUnitError,
    ParseError,
    SqlwalkError,
    WorkspaceError,
)
from sqlwalk.engine.parser import parse_sql
from sqlwalk.engine.sql_analysis import extract_config, extract_dependencies

from .models import SQLUnit, unit_lookup

logger = logging.getLogger("sqlwalk.transform")

SQL_EXTENSIONS = frozenset({".sql"})
# Recognized as transforms but not executable yet; skipped with a warning.
PENDING_EXTENSIONS = frozenset({".py"})


def _walk_files(root: Path) -> list[Path]:
    """All files under root, following symlinks, in lexical path order."""

    def _on_error(err: OSError) -> None:
        raise WorkspaceError(f"Failed to read directory {err.filename}: {err.strerror}") from err

    files: list[Path] = []
    seen: set[str] = set()
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=True):
        real = os.path.realpath(dirpath)
        if real in seen:
            # Symlink loop back into a visited directory
            dirnames[:] = []
            continue
        seen.add(real)
        dirnames.sort()
        files.extend(Path(dirpath) / f for f in filenames)
    return sorted(files)


def discover_sql_files(root: Path) -> list[Path]:
    """Enumerate SQL units under root (or root itself when it is a .sql file).

    The order is lexical by path, so repeated runs over the same tree visit
    files identically.
    """
    root = Path(root)
    if not root.exists():
        raise WorkspaceError(f"Workspace not found: {root}")
    if root.is_file():
        return [root] if root.suffix.lower() in SQL_EXTENSIONS else []

    sql_files: list[Path] = []
    for path in _walk_files(root):
        if not path.is_file():
            continue
        suffix = path.suffix.lower()
        if suffix in SQL_EXTENSIONS:
            sql_files.append(path)
        elif suffix in PENDING_EXTENSIONS:
            logger.warning("Python units are not supported yet, skipping: %s", path)
    return sql_files


def read_unit_sql(path: Path) -> str:
    try:
        return path.read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise WorkspaceError(f"Failed to read SQL file {path}: {e}") from e


def load_unit(path: Path, dialect: str = "duckdb") -> SQLUnit:
    """Read, parse and analyze one SQL file."""
    path = Path(path)
    name = path.stem
    sql = read_unit_sql(path)
    config = extract_config(sql)

    try:
        statements = parse_sql(replace_env_vars(sql), dialect)
    except ParseError as e:
        raise ParseError(e.message, path=path) from e
    logger.debug("Parsed %d statement(s) from %s", len(statements), path)

    depends_on = extract_dependencies(statements, name)
    logger.debug("Dependencies for %s: %s", name, sorted(depends_on))

    return SQLUnit(
        name=name,
        path=path,
        sql=sql,
        statements=tuple(statements),
        depends_on=frozenset(depends_on),
        config=config,
    )


def get_dependencies(
    root: Path,
    dialect: str = "duckdb",
    strict: bool = True,
) -> dict[str, SQLUnit]:
    """Scan a workspace and build the unit map.

    Args:
        root: SQL folder, or a single .sql file.
        dialect: Parser dialect hint ("duckdb" or anything else for generic SQL).
        strict: Raise on the first unreadable/unparseable file or duplicate name.
            When False, such files are logged and left out of the map.

    Returns:
        Dict of unit name -> SQLUnit, in discovery order.
    """
    root = Path(root)
    logger.info("Looking for SQL files in %s", root)
    units: dict[str, SQLUnit] = {}
    # DuckDB folds identifier case, so Orders.sql and orders.sql collide
    seen: dict[str, str] = {}

    for path in discover_sql_files(root):
        try:
            unit = load_unit(path, dialect)
            first = seen.get(unit.name.lower())
            if first is not None:
                raise DuplicateUnitError(unit.name, units[first].path, path)
        except SqlwalkError as e:
            if strict:
                raise
            logger.warning("Skipping %s: %s", path, e)
            continue
        units[unit.name] = unit
        seen[unit.name.lower()] = unit.name

    logger.info("Dependency processing complete, found %d unit(s)", len(units))
    return units


def build_graph(units: dict[str, SQLUnit]) -> dict[str, set[str]]:
    """Directed graph as dependency -> set of dependents.

    Nodes are exactly the unit names. References match unit names
    case-insensitively; names that are not units (source tables) produce no
    edges.
    """
    graph: dict[str, set[str]] = {name: set() for name in units}
    lookup = unit_lookup(units)
    for name, unit in units.items():
        for dep in unit.depends_on:
            if dep.lower() in lookup:
                graph[lookup[dep.lower()]].add(name)
            else:
                logger.debug("Skipping edge for external dependency: %s -> %s", dep, name)
    return graph


def _unresolved(graph: dict[str, set[str]]) -> set[str]:
    """Nodes left after repeatedly removing nodes with no incoming edges."""
    indegree = {name: 0 for name in graph}
    for dependents in graph.values():
        for dependent in dependents:
            indegree[dependent] += 1
    ready = [name for name, degree in indegree.items() if degree == 0]
    while ready:
        name = ready.pop()
        del indegree[name]
        for dependent in graph[name]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                ready.append(dependent)
    return set(indegree)


def get_execution_tiers(units: dict[str, SQLUnit]) -> list[list[str]]:
    """Topologically sort units and group them by tier.

    Units within a tier have no dependencies on each other. Names within a
    tier are sorted, so the result is stable for unchanged input.

    Raises:
        CycleError: the graph is not a DAG. No partial order is returned.
    """
    graph = build_graph(units)
    sorter: TopologicalSorter[str] = TopologicalSorter()
    for name in units:
        sorter.add(name)
    for dep, dependents in graph.items():
        for dependent in dependents:
            sorter.add(dependent, dep)

    try:
        sorter.prepare()
    except GraphCycleError as e:
        cycle = list(e.args[1]) if len(e.args) > 1 else []
        raise CycleError(cycle, unresolved=_unresolved(graph)) from e

    tiers: list[list[str]] = []
    while sorter.is_active():
        ready = sorted(sorter.get_ready())
        tiers.append(ready)
        sorter.done(*ready)
    return tiers


def get_execution_order(units: dict[str, SQLUnit]) -> list[str]:
    """Flat execution order: every dependency precedes its dependents."""
    order = [name for tier in get_execution_tiers(units) for name in tier]
    logger.info("Execution order: %s", order)
    return order
