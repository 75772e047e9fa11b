"""Data classes for the SQL transformation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from sqlwalk.config import ModelConfig
from sqlwalk.engine.parser import Statement


@dataclass(frozen=True)
class SQLUnit:
    """A single SQL file: one transformable object named after its file stem."""

    name: str  # e.g. "stg_orders"
    path: Path
    sql: str  # raw file content
    statements: tuple[Statement, ...] = ()
    depends_on: frozenset[str] = frozenset()  # every referenced table, known or external
    config: ModelConfig | None = None

    def known_dependencies(self, units: dict[str, SQLUnit]) -> list[str]:
        """Unit names this unit depends on, sorted.

        References match unit names case-insensitively, like DuckDB identifiers,
        and are returned in the unit's own spelling.
        """
        lookup = unit_lookup(units)
        return sorted({lookup[d.lower()] for d in self.depends_on if d.lower() in lookup})

    def external_dependencies(self, units: dict[str, SQLUnit]) -> list[str]:
        """Dependencies with no unit behind them (source tables), sorted."""
        lookup = unit_lookup(units)
        return sorted(d for d in self.depends_on if d.lower() not in lookup)


def unit_lookup(units: dict[str, SQLUnit]) -> dict[str, str]:
    """Lowercased unit name -> unit name."""
    return {name.lower(): name for name in units}


@dataclass
class UnitOutcome:
    """Result of executing a single unit."""

    unit: str
    status: str  # "built", "error" or "skipped"
    duration_ms: int = 0
    output_type: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "built"


@dataclass
class RunSummary:
    """Outcome of a whole run, strict or force."""

    mode: str  # "strict" or "force"
    outcomes: list[UnitOutcome] = field(default_factory=list)
    order: list[str] = field(default_factory=list)
    lineage_path: Path | None = None
    lineage_error: str | None = None

    @property
    def built(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "built")

    @property
    def errors(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "error")

    @property
    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.status == "error"]

    def as_dict(self) -> dict[str, str]:
        """Mapping of unit name -> status."""
        return {o.unit: o.status for o in self.outcomes}
