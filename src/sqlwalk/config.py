"""Project configuration: project.yml parsing, output settings and defaults."""

from __future__ import annotations

import logging
import os
import re
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger("sqlwalk.config")


class OutputType(str, Enum):
    """How a unit's result is materialized."""

    TABLE = "table"
    VIEW = "view"
    PARQUET = "parquet"
    CSV = "csv"
    JSON = "json"

    @property
    def is_file(self) -> bool:
        return self in (OutputType.PARQUET, OutputType.CSV, OutputType.JSON)


class OutputConfig(BaseModel):
    """Output settings, either project-wide or from a unit's ``-- @config:`` line."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    output_type: OutputType = Field(default=OutputType.TABLE, alias="type")
    location: str | None = None  # file outputs only; may contain {table_name}
    keep_table: bool = False  # keep the temp table after a file export

    @field_validator("output_type", mode="before")
    @classmethod
    def _lowercase_type(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    def merged_with(self, override: OutputConfig | None) -> OutputConfig:
        """Return a copy where fields explicitly set on ``override`` win."""
        if override is None:
            return self.model_copy()
        updates = {name: getattr(override, name) for name in override.model_fields_set}
        return self.model_copy(update=updates)

    def get_location(self, table_name: str) -> str | None:
        if self.location is None:
            return None
        return self.location.replace("{table_name}", table_name)

    def default_location(self, table_name: str) -> str:
        if not self.output_type.is_file:
            return ""
        return f"output/{table_name}.{self.output_type.value}"


class ModelConfig(BaseModel):
    """Per-unit configuration from ``-- @config: {...}`` directives."""
    model_config = ConfigDict(extra="ignore")

    output: OutputConfig | None = None


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")
    path: str = "sqlwalk.duckdb"


class EnvironmentConfig(BaseModel):
    """A single environment override (e.g. dev, prod)."""
    model_config = ConfigDict(extra="ignore")

    database: dict[str, Any] = Field(default_factory=dict)  # {"path": "dev.duckdb"}
    schema_name: str | None = Field(default=None, alias="schema")
    output: dict[str, Any] = Field(default_factory=dict)


class ProjectConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = "default"
    description: str = ""
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sql_folder: str = "transform"
    schema_name: str = Field(default="transform", alias="schema")
    dialect: str = "duckdb"
    output: OutputConfig = Field(default_factory=OutputConfig)
    environments: dict[str, EnvironmentConfig] = Field(default_factory=dict)
    active_environment: str | None = None
    project_dir: Path = Field(default_factory=Path.cwd)

    @property
    def schema(self) -> str:
        return self.schema_name

    @property
    def sql_path(self) -> Path:
        return self.project_dir / self.sql_folder

    @property
    def database_path(self) -> Path:
        return self.project_dir / self.database.path


def _expand_env_vars(value: Any) -> Any:
    """Expand ${ENV_VAR} references in string values."""
    if isinstance(value, str):
        return re.sub(
            r"\$\{(\w+)\}",
            lambda m: os.environ.get(m.group(1), m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    return value


def load_env(project_dir: Path) -> dict[str, str]:
    """Load variables from a .env file into os.environ. Returns loaded keys."""
    env_path = project_dir / ".env"
    loaded: dict[str, str] = {}
    if not env_path.exists():
        return loaded

    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        # Strip surrounding quotes
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        os.environ[key] = value
        loaded[key] = value

    return loaded


def _select_environment(environments: dict[str, EnvironmentConfig], env: str | None) -> str | None:
    if env is None:
        return "dev" if "dev" in environments else None
    if env not in environments:
        logger.warning("Environment %r is not defined in project.yml, using base settings", env)
        return None
    return env


def _apply_environment(raw: dict[str, Any], env_cfg: EnvironmentConfig) -> dict[str, Any]:
    """Overlay an environment's database path, schema and output onto raw project settings."""
    merged = dict(raw)
    if "path" in env_cfg.database:
        merged["database"] = {**merged["database"], "path": env_cfg.database["path"]}
    if env_cfg.schema_name:
        merged["schema"] = env_cfg.schema_name
    if env_cfg.output:
        merged["output"] = {**merged["output"], **env_cfg.output}
    return merged


def load_project(project_dir: Path | None = None, env: str | None = None) -> ProjectConfig:
    """Load project.yml from project_dir (default: cwd).

    A ``.env`` file in the same directory is loaded first so ``${VAR}``
    references resolve. When environments are defined and ``env`` is None,
    ``dev`` is activated if it exists. A missing project.yml yields defaults.
    """
    project_dir = Path(project_dir) if project_dir else Path.cwd()
    load_env(project_dir)

    config_path = project_dir / "project.yml"
    if not config_path.exists():
        return ProjectConfig(project_dir=project_dir)

    raw: dict[str, Any] = _expand_env_vars(yaml.safe_load(config_path.read_text()) or {})
    raw.setdefault("name", project_dir.name)
    raw["database"] = raw.get("database") or {}
    raw["output"] = raw.get("output") or {}

    environments = {
        name: EnvironmentConfig.model_validate(env_raw or {})
        for name, env_raw in (raw.pop("environments", None) or {}).items()
    }
    active_env = _select_environment(environments, env)
    if active_env:
        raw = _apply_environment(raw, environments[active_env])

    raw.update(environments=environments, active_environment=active_env, project_dir=project_dir)
    return ProjectConfig.model_validate(raw)


PROJECT_YML_TEMPLATE = """\
name: {name}
description: ""

database:
  path: sqlwalk.duckdb

# Folder scanned for SQL units. Each file becomes one table named after its stem.
sql_folder: transform
schema: transform
dialect: duckdb

# Default output for every unit. Override per file with a comment line such as
#   -- @config: {{output: {{type: view}}}}
output:
  type: table
  keep_table: false
"""

SAMPLE_SOURCE_SQL = """\
-- @config: {output: {type: table}}
SELECT 1 AS id, 'Alice' AS name
UNION ALL
SELECT 2 AS id, 'Bob' AS name
"""

SAMPLE_DEPENDENT_SQL = """\
-- @config: {output: {type: view}}
SELECT id, upper(name) AS name
FROM customers
"""
