"""Mermaid lineage diagram."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlwalk.engine.errors import WorkspaceError

from .models import SQLUnit

logger = logging.getLogger("sqlwalk.transform")

LINEAGE_FILENAME = "lineage.mmd"


def render_mermaid(units: dict[str, SQLUnit]) -> str:
    """One node per unit, one ``dep --> unit`` edge per dependency that is a unit."""
    lines = ["graph TD"]
    names = sorted(units)
    lines.extend(f"    {name}" for name in names)
    for name in names:
        for dep in units[name].known_dependencies(units):
            lines.append(f"    {dep} --> {name}")
    return "\n".join(lines) + "\n"


def generate_mermaid_diagram(units: dict[str, SQLUnit], output_dir: Path) -> Path:
    """Write ``lineage.mmd`` into output_dir and return its path."""
    output_dir = Path(output_dir)
    if output_dir.is_file():
        output_dir = output_dir.parent
    output_path = output_dir / LINEAGE_FILENAME
    try:
        output_path.write_text(render_mermaid(units))
    except OSError as e:
        raise WorkspaceError(f"Failed to create lineage file {output_path}: {e}") from e
    logger.info("Generated lineage diagram at %s", output_path)
    return output_path
