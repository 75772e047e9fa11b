"""Unit execution: statement dispatch and output materialization."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from sqlwalk.config import OutputConfig, OutputType
from sqlwalk.engine.database import RunContext
from sqlwalk.engine.errors import ExecError
from sqlwalk.engine.parser import Statement, is_query, statement_sql
from sqlwalk.engine.sql_analysis import strip_config_comments
from sqlwalk.engine.utils import sql_string, validate_identifier

from .models import SQLUnit, UnitOutcome

logger = logging.getLogger("sqlwalk.transform")

_COPY_OPTIONS = {
    OutputType.PARQUET: "FORMAT PARQUET",
    OutputType.CSV: "FORMAT CSV, HEADER",
    OutputType.JSON: "FORMAT JSON",
}


def resolve_output(unit: SQLUnit, default_output: OutputConfig) -> OutputConfig:
    """Project default output with the unit's inline directive applied on top."""
    override = unit.config.output if unit.config else None
    return default_output.merged_with(override)


def _resolve_location(context: RunContext, name: str, output: OutputConfig) -> Path:
    location = Path(output.get_location(name) or output.default_location(name))
    if not location.is_absolute():
        location = context.project_dir / location
    return location


def handle_output(
    context: RunContext,
    name: str,
    query: str,
    output: OutputConfig,
) -> Path | None:
    """Materialize a query as a table, a view or an exported file.

    Returns the written file for file outputs, None otherwise.
    """
    try:
        validate_identifier(name, "unit name")
    except ValueError as e:
        raise ExecError(str(e), unit=name) from e

    target = f"{context.schema}.{name}"
    if output.output_type is OutputType.TABLE:
        context.execute(f"CREATE OR REPLACE TABLE {target} AS\n{query}", unit=name)
        return None
    if output.output_type is OutputType.VIEW:
        context.execute(f"CREATE OR REPLACE VIEW {target} AS\n{query}", unit=name)
        return None

    temp = f"{context.schema}.temp_{name}"
    context.execute(f"CREATE OR REPLACE TABLE {temp} AS\n{query}", unit=name)

    location = _resolve_location(context, name, output)
    try:
        location.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExecError(f"Cannot create output directory {location.parent}: {e}", unit=name) from e

    options = _COPY_OPTIONS[output.output_type]
    context.execute(f"COPY {temp} TO {sql_string(location)} ({options})", unit=name)
    logger.info("Exported %s to %s", name, location)

    if not output.keep_table:
        context.execute(f"DROP TABLE IF EXISTS {temp}", unit=name)
    return location


def _statement_texts(unit: SQLUnit) -> list[tuple[Statement, str]]:
    # A single statement runs as the file was written, minus directives.
    if len(unit.statements) == 1:
        return [(unit.statements[0], strip_config_comments(unit.sql))]
    return [(s, strip_config_comments(statement_sql(s))) for s in unit.statements]


def execute_unit(
    context: RunContext,
    unit: SQLUnit,
    default_output: OutputConfig,
) -> UnitOutcome:
    """Run every statement of a unit. Queries are materialized under the unit's name.

    Raises:
        ExecError: a statement failed. Statements before it stay applied.
    """
    output = resolve_output(unit, default_output)
    logger.debug("Output config for %s: %s", unit.name, output)

    if not unit.statements:
        logger.warning("No statements in %s, nothing to run", unit.path)
        return UnitOutcome(unit=unit.name, status="skipped")

    start = time.perf_counter()
    for statement, sql in _statement_texts(unit):
        if not sql:
            continue
        if is_query(statement):
            handle_output(context, unit.name, sql, output)
        else:
            context.execute(sql, unit=unit.name)
    duration_ms = int((time.perf_counter() - start) * 1000)

    return UnitOutcome(
        unit=unit.name,
        status="built",
        duration_ms=duration_ms,
        output_type=output.output_type.value,
    )
