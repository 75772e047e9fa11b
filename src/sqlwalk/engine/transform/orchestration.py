"""Pipeline orchestration: strict (dependency ordered) and force runners."""

from __future__ import annotations

import logging
import time
from pathlib import Path

import duckdb
from rich.console import Console
from rich.markup import escape

from sqlwalk.config import OutputConfig
from sqlwalk.engine.database import RunContext, ensure_meta_table, log_run
from sqlwalk.engine.errors import ExecError, SqlwalkError

from .discovery import discover_sql_files, get_dependencies, get_execution_order, load_unit
from .execution import execute_unit, resolve_output
from .lineage import generate_mermaid_diagram
from .models import RunSummary, SQLUnit, UnitOutcome

console = Console()
logger = logging.getLogger("sqlwalk.transform")


def _with_upstream(units: dict[str, SQLUnit], targets: list[str]) -> set[str]:
    """Targets plus every unit they transitively depend on."""
    selected: set[str] = set()
    stack = list(targets)
    while stack:
        name = stack.pop()
        if name in selected:
            continue
        selected.add(name)
        stack.extend(units[name].known_dependencies(units))
    return selected


def _label(unit: SQLUnit, default_output: OutputConfig) -> str:
    output_type = resolve_output(unit, default_output).output_type.value
    return f"[bold]{unit.name}[/bold] ({output_type})"


def generate_lineage(sql_path: Path, dialect: str = "duckdb") -> Path:
    """Scan the workspace and write the lineage diagram without executing anything."""
    units = get_dependencies(sql_path, dialect)
    return generate_mermaid_diagram(units, sql_path)


def run_transform(
    conn: duckdb.DuckDBPyConnection,
    sql_path: Path,
    schema: str = "transform",
    dialect: str = "duckdb",
    default_output: OutputConfig | None = None,
    project_dir: Path | None = None,
    targets: list[str] | None = None,
) -> RunSummary:
    """Run the workspace in dependency order, stopping at the first failure.

    Args:
        conn: DuckDB connection
        sql_path: SQL folder (or a single .sql file)
        schema: Target schema for materialized units
        dialect: Parser dialect hint
        default_output: Project-wide output config (table when omitted)
        project_dir: Base for relative file output locations
        targets: Units to run, with their upstream units (None = all)

    Returns:
        RunSummary with one outcome per executed unit.

    Raises:
        ParseError, WorkspaceError, CycleError: before anything executes.
        ExecError: a unit failed. Units built before it are left in place.
    """
    default_output = default_output or OutputConfig()
    units = get_dependencies(sql_path, dialect)
    order = get_execution_order(units)
    summary = RunSummary(mode="strict")

    if not units:
        console.print(f"[yellow]No SQL units found in {sql_path}[/yellow]")
        return summary

    if targets and targets != ["all"]:
        unknown = [t for t in targets if t not in units]
        if unknown:
            console.print(f"[yellow]No units matched targets: {', '.join(unknown)}[/yellow]")
            console.print(f"[dim]Available units: {', '.join(sorted(units))}[/dim]")
            return summary
        selected = _with_upstream(units, targets)
        order = [name for name in order if name in selected]

    summary.order = order
    context = RunContext(conn, schema=schema, project_dir=project_dir)
    ensure_meta_table(conn)
    context.prepare_schema()
    logger.info("Running %d unit(s)", len(order))

    for name in order:
        unit = units[name]
        label = _label(unit, default_output)
        try:
            outcome = execute_unit(context, unit, default_output)
        except ExecError as e:
            log_run(conn, "strict", name, "error", error=str(e))
            console.print(f"  [red]fail[/red]  {label}: {escape(e.message)}")
            summary.outcomes.append(UnitOutcome(unit=name, status="error", error=str(e)))
            raise

        log_run(conn, "strict", name, outcome.status, outcome.duration_ms, outcome.output_type)
        summary.outcomes.append(outcome)
        if outcome.ok:
            console.print(f"  [green]done[/green]  {label} ({outcome.duration_ms}ms)")
        else:
            console.print(f"  [dim]skip[/dim]  {label}")

    summary.lineage_path = generate_mermaid_diagram(units, sql_path)
    logger.info("Transformation pipeline completed")
    return summary


def run_force(
    conn: duckdb.DuckDBPyConnection,
    sql_path: Path,
    schema: str = "transform",
    dialect: str = "duckdb",
    default_output: OutputConfig | None = None,
    project_dir: Path | None = None,
) -> RunSummary:
    """Run every SQL file once, in path order, ignoring dependencies.

    A failing unit is logged and recorded, and the run moves on to the next
    file. The lineage diagram is attempted afterwards; failing to produce it
    is recorded on the summary, not raised.

    Raises:
        WorkspaceError: the workspace itself cannot be enumerated.
        ExecError: the target schema cannot be prepared.
    """
    default_output = default_output or OutputConfig()
    summary = RunSummary(mode="force")
    paths = discover_sql_files(sql_path)

    context = RunContext(conn, schema=schema, project_dir=project_dir)
    ensure_meta_table(conn)
    context.prepare_schema()
    logger.info("Running %d file(s) in force mode", len(paths))

    for path in paths:
        name = path.stem
        start = time.perf_counter()
        try:
            unit = load_unit(path, dialect)
            outcome = execute_unit(context, unit, default_output)
        except (SqlwalkError, OSError) as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.error("Error executing %s: %s", path, e)
            log_run(conn, "force", name, "error", duration_ms, error=str(e))
            message = e.message if isinstance(e, ExecError) else str(e)
            console.print(f"  [red]fail[/red]  [bold]{name}[/bold]: {escape(message)}")
            summary.outcomes.append(
                UnitOutcome(unit=name, status="error", duration_ms=duration_ms, error=str(e))
            )
            continue

        log_run(conn, "force", name, outcome.status, outcome.duration_ms, outcome.output_type)
        summary.outcomes.append(outcome)
        summary.order.append(name)
        label = _label(unit, default_output)
        if outcome.ok:
            console.print(f"  [green]done[/green]  {label} ({outcome.duration_ms}ms)")
        else:
            console.print(f"  [dim]skip[/dim]  {label}")

    try:
        units = get_dependencies(sql_path, dialect, strict=False)
        summary.lineage_path = generate_mermaid_diagram(units, sql_path)
    except (SqlwalkError, OSError) as e:
        logger.warning("Could not generate lineage diagram: %s", e)
        summary.lineage_error = str(e)

    logger.info(
        "Force mode completed, processed %d file(s) with %d error(s)",
        len(paths),
        summary.errors,
    )
    return summary
