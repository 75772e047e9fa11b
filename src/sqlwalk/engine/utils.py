"""Shared utility functions for the sqlwalk engine layer."""

from __future__ import annotations

import re
from pathlib import Path

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_identifier(value: str, label: str = "identifier") -> str:
    """Check that a unit name or schema can be interpolated into DDL unquoted.

    Raises ValueError naming ``label`` when it cannot.
    """
    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"Invalid {label}: {value!r} (must match [A-Za-z_][A-Za-z0-9_]*)")
    return value


def sql_string(value: str | Path) -> str:
    """Render a value as a single-quoted SQL string literal."""
    return "'" + str(value).replace("'", "''") + "'"
