"""CLI interface for sqlwalk.

The Typer app and shared helpers live here; each module registers its commands.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

app = typer.Typer(
    name="sqlwalk",
    help="SQL transformation orchestrator. Orders SQL files by the tables they read and runs them in DuckDB.",
    no_args_is_help=True,
)
console = Console()


def _resolve_project(project_dir: Path | None = None) -> Path:
    project_dir = project_dir or Path.cwd()
    if not (project_dir / "project.yml").exists():
        console.print(f"[red]No project.yml found in {project_dir}[/red]")
        console.print("Run [bold]sqlwalk init[/bold] to create a new project.")
        raise typer.Exit(1)
    return project_dir


def _load_config(project_dir: Path, env: str | None = None):
    """Load project config with optional environment override."""
    from sqlwalk.config import load_project
    return load_project(project_dir, env=env)


# Import submodules so they register their commands on `app`.
from sqlwalk.cli import pipeline  # noqa: E402, F401
from sqlwalk.cli import project  # noqa: E402, F401
