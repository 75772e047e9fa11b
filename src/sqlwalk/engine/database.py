"""DuckDB connection management, run context and run log."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

import duckdb

from sqlwalk.engine.errors import ExecError
from sqlwalk.engine.utils import validate_identifier

logger = logging.getLogger("sqlwalk.database")

_ENV_VAR_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def connect(db_path: str | Path, read_only: bool = False) -> duckdb.DuckDBPyConnection:
    """Open a DuckDB connection, creating the parent directory if needed."""
    path = Path(db_path)
    if not read_only and str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def replace_env_vars(sql: str) -> str:
    """Replace ``{{ VAR }}`` placeholders with environment variables.

    Unset variables are left as written.
    """

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = os.environ.get(name)
        if value is None:
            logger.warning("Environment variable not set: %s", name)
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_substitute, sql)


class RunContext:
    """Everything a unit execution needs: the connection, target schema and project root."""

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        schema: str = "transform",
        project_dir: Path | None = None,
    ) -> None:
        self.conn = conn
        self.schema = validate_identifier(schema, "schema")
        self.project_dir = project_dir or Path.cwd()

    def execute(self, sql: str, unit: str | None = None) -> None:
        """Execute SQL after environment variable substitution."""
        sql = replace_env_vars(sql)
        logger.debug("Executing SQL: %s", sql)
        try:
            self.conn.execute(sql)
        except duckdb.Error as e:
            raise ExecError(f"Failed to execute SQL: {e}", unit=unit) from e

    def prepare_schema(self) -> None:
        """Create the target schema and make it the default for unqualified names."""
        self.execute(f"CREATE SCHEMA IF NOT EXISTS {self.schema}")
        self.execute(f"USE {self.schema}")


def ensure_meta_table(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the internal run log table."""
    conn.execute("""
        CREATE SCHEMA IF NOT EXISTS _sqlwalk_internal
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS _sqlwalk_internal.run_log (
            run_id       VARCHAR DEFAULT gen_random_uuid()::VARCHAR,
            mode         VARCHAR NOT NULL,
            unit         VARCHAR NOT NULL,
            status       VARCHAR NOT NULL,
            started_at   TIMESTAMP DEFAULT current_timestamp,
            duration_ms  BIGINT,
            output_type  VARCHAR,
            error        VARCHAR
        )
    """)


def log_run(
    conn: duckdb.DuckDBPyConnection,
    mode: str,
    unit: str,
    status: str,
    duration_ms: int = 0,
    output_type: str | None = None,
    error: str | None = None,
) -> None:
    """Insert a run log entry."""
    conn.execute(
        """
        INSERT INTO _sqlwalk_internal.run_log
            (mode, unit, status, duration_ms, output_type, error)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [mode, unit, status, duration_ms, output_type, error],
    )
