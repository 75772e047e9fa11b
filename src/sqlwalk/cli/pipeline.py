"""Pipeline commands: run, lineage, plan."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.markup import escape
from rich.table import Table

from sqlwalk.cli import _load_config, _resolve_project, app, console


@app.command()
def run(
    targets: Annotated[Optional[list[str]], typer.Argument(help="Units to run, with their upstream units (default: all)")] = None,
    force: Annotated[bool, typer.Option("--force", "-f", help="Run every SQL file once in path order, ignoring dependencies and continuing past failures")] = False,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use (e.g. dev, prod)")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
    log_level: Annotated[str, typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")] = "WARNING",
) -> None:
    """Resolve dependencies between SQL files and execute them in order.

    Strict mode stops at the first failing unit. Force mode runs everything
    and reports failures at the end.
    """
    from sqlwalk import setup_logging
    from sqlwalk.engine.database import connect
    from sqlwalk.engine.errors import SqlwalkError
    from sqlwalk.engine.transform import run_force, run_transform

    setup_logging(log_level)
    project_dir = _resolve_project(project_dir)
    config = _load_config(project_dir, env)

    if force and targets:
        console.print("[yellow]Targets are ignored in force mode[/yellow]")

    mode = "force" if force else "strict"
    env_label = f" [dim](env={config.active_environment})[/dim]" if config.active_environment else ""
    console.print(f"[bold]Run[/bold] [dim]({mode})[/dim]{env_label}:")

    conn = connect(config.database_path)
    try:
        if force:
            summary = run_force(
                conn, config.sql_path, schema=config.schema, dialect=config.dialect,
                default_output=config.output, project_dir=project_dir,
            )
        else:
            summary = run_transform(
                conn, config.sql_path, schema=config.schema, dialect=config.dialect,
                default_output=config.output, project_dir=project_dir, targets=targets,
            )
    except SqlwalkError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
    finally:
        conn.close()

    if not summary.outcomes:
        return

    console.print()
    console.print(f"  {summary.built} built, {summary.errors} errors")

    if summary.failed:
        table = Table(title="Failed units")
        table.add_column("Unit", style="bold")
        table.add_column("Error", style="red")
        for outcome in summary.failed:
            table.add_row(outcome.unit, escape(outcome.error or ""))
        console.print(table)

    if summary.lineage_path:
        console.print(f"  [dim]lineage: {summary.lineage_path}[/dim]")
    elif summary.lineage_error:
        console.print(f"  [yellow]lineage not written: {escape(summary.lineage_error)}[/yellow]")


@app.command()
def lineage(
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
    log_level: Annotated[str, typer.Option("--log-level", help="Log level")] = "WARNING",
) -> None:
    """Write the Mermaid dependency diagram (lineage.mmd) without running anything."""
    from sqlwalk import setup_logging
    from sqlwalk.engine.errors import SqlwalkError
    from sqlwalk.engine.transform import generate_lineage

    setup_logging(log_level)
    project_dir = _resolve_project(project_dir)
    config = _load_config(project_dir, env)

    try:
        path = generate_lineage(config.sql_path, config.dialect)
    except SqlwalkError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Lineage diagram written to {path}[/green]")


@app.command()
def plan(
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """Show the execution order grouped into independent tiers."""
    from sqlwalk.engine.errors import CycleError, SqlwalkError
    from sqlwalk.engine.transform import get_dependencies, get_execution_tiers

    project_dir = _resolve_project(project_dir)
    config = _load_config(project_dir, env)

    try:
        units = get_dependencies(config.sql_path, config.dialect)
        tiers = get_execution_tiers(units)
    except CycleError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        console.print(f"[dim]Unresolved units: {', '.join(sorted(e.unresolved))}[/dim]")
        raise typer.Exit(1)
    except SqlwalkError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not tiers:
        console.print(f"[yellow]No SQL units found in {config.sql_path}[/yellow]")
        return

    table = Table(title="Execution plan")
    table.add_column("Tier", justify="right")
    table.add_column("Units", style="bold")
    for idx, tier in enumerate(tiers, 1):
        table.add_row(str(idx), ", ".join(tier))
    console.print(table)
