"""Project management commands: init, deps."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.markup import escape
from rich.table import Table

from sqlwalk.cli import _load_config, _resolve_project, app, console


@app.command()
def init(
    name: Annotated[str, typer.Argument(help="Project name")] = "my-project",
    directory: Annotated[Optional[Path], typer.Option("--dir", "-d", help="Target directory")] = None,
) -> None:
    """Scaffold a new sqlwalk project with two sample units."""
    from sqlwalk.config import PROJECT_YML_TEMPLATE, SAMPLE_DEPENDENT_SQL, SAMPLE_SOURCE_SQL

    target = directory or Path.cwd() / name
    if (target / "project.yml").exists():
        console.print(f"[red]project.yml already exists in {target}[/red]")
        raise typer.Exit(1)

    (target / "transform").mkdir(parents=True, exist_ok=True)
    (target / "project.yml").write_text(PROJECT_YML_TEMPLATE.format(name=name))
    (target / "transform" / "customers.sql").write_text(SAMPLE_SOURCE_SQL)
    (target / "transform" / "customer_names.sql").write_text(SAMPLE_DEPENDENT_SQL)
    (target / ".gitignore").write_text(
        "sqlwalk.duckdb\nsqlwalk.duckdb.wal\n__pycache__/\n.env\noutput/\n"
    )

    console.print(f"[green]Project '{name}' created at {target}[/green]")
    console.print()
    console.print("Quick start:")
    console.print(f"  cd {name}")
    console.print("  sqlwalk plan     # show execution order")
    console.print("  sqlwalk run      # build every unit")


@app.command()
def deps(
    as_json: Annotated[bool, typer.Option("--json", help="Print as JSON")] = False,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """List every unit with the units and source tables it reads."""
    from sqlwalk.engine.errors import SqlwalkError
    from sqlwalk.engine.transform import get_dependencies

    project_dir = _resolve_project(project_dir)
    config = _load_config(project_dir, env)

    try:
        units = get_dependencies(config.sql_path, config.dialect)
    except SqlwalkError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if as_json:
        payload = {
            name: {
                "path": str(unit.path.relative_to(project_dir) if unit.path.is_relative_to(project_dir) else unit.path),
                "depends_on": unit.known_dependencies(units),
                "sources": unit.external_dependencies(units),
            }
            for name, unit in sorted(units.items())
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    if not units:
        console.print(f"[yellow]No SQL units found in {config.sql_path}[/yellow]")
        return

    table = Table(title="Dependencies")
    table.add_column("Unit", style="bold")
    table.add_column("Depends on")
    table.add_column("Sources", style="dim")
    for name, unit in sorted(units.items()):
        table.add_row(
            name,
            ", ".join(unit.known_dependencies(units)),
            ", ".join(unit.external_dependencies(units)),
        )
    console.print(table)
