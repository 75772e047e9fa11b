"""SQL transformation engine.

Scans a folder of SQL files, derives each file's dependencies from the tables
it reads, orders the files so dependencies run first and materializes each
one as a table, view or exported file. Force mode runs every file regardless
of order.

    from sqlwalk.engine.transform import run_transform, get_dependencies, SQLUnit, ...
"""

from __future__ import annotations

# Data models
from .models import (
    RunSummary,
    SQLUnit,
    UnitOutcome,
)

# Discovery and ordering
from .discovery import (
    build_graph,
    discover_sql_files,
    get_dependencies,
    get_execution_order,
    get_execution_tiers,
    load_unit,
)

# Execution
from .execution import (
    execute_unit,
    handle_output,
    resolve_output,
)

# Lineage
from .lineage import (
    generate_mermaid_diagram,
    render_mermaid,
)

# Orchestration
from .orchestration import (
    generate_lineage,
    run_force,
    run_transform,
)

__all__ = [
    # Models
    "RunSummary",
    "SQLUnit",
    "UnitOutcome",
    # Discovery
    "build_graph",
    "discover_sql_files",
    "get_dependencies",
    "get_execution_order",
    "get_execution_tiers",
    "load_unit",
    # Execution
    "execute_unit",
    "handle_output",
    "resolve_output",
    # Lineage
    "generate_mermaid_diagram",
    "render_mermaid",
    # Orchestration
    "generate_lineage",
    "run_force",
    "run_transform",
]
