"""Exception hierarchy for the sqlwalk engine.

Errors local to one unit (parse, exec) are recoverable in force mode and fatal
in strict mode. Structural errors (cycle, workspace I/O) are always fatal.
"""

from __future__ import annotations

from pathlib import Path


class SqlwalkError(Exception):
    """Base exception for all sqlwalk engine errors."""


class ParseError(SqlwalkError):
    """SQL text could not be converted into a statement tree."""

    def __init__(self, message: str, path: Path | str | None = None):
        self.message = message
        self.path = Path(path) if path else None
        prefix = f"{self.path}: " if self.path else ""
        super().__init__(f"{prefix}{message}")


class UnsupportedNodeType(ParseError):
    """The native AST contains a construct the adapter does not translate.

    Always triggers a retry with the fallback parser.
    """

    def __init__(self, node_type: str, context: str = "node"):
        self.node_type = node_type
        super().__init__(f"Unsupported DuckDB AST {context} type: {node_type}")


class WorkspaceError(SqlwalkError):
    """Workspace traversal or file read failure."""


class DuplicateUnitError(WorkspaceError):
    """Two SQL files derive the same unit name."""

    def __init__(self, name: str, first: Path, second: Path):
        self.name = name
        self.paths = (first, second)
        super().__init__(
            f"Duplicate unit name '{name}': {first} and {second}. "
            "Unit names come from file stems and must be unique across the workspace."
        )


class CycleError(SqlwalkError):
    """The dependency graph is not a DAG."""

    def __init__(self, cycle: list[str], unresolved: set[str] | None = None):
        self.cycle = cycle
        self.unresolved = set(unresolved or cycle)
        path = " -> ".join(cycle) if cycle else ", ".join(sorted(self.unresolved))
        super().__init__(f"Cycle detected in dependency graph: {path}")


class ExecError(SqlwalkError):
    """The database failed to run a unit's SQL."""

    def __init__(self, message: str, unit: str | None = None):
        self.message = message
        self.unit = unit
        prefix = f"{unit}: " if unit else ""
        super().__init__(f"{prefix}{message}")
