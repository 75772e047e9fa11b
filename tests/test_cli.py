"""Tests for the Typer CLI."""

from __future__ import annotations

import json
import os

import duckdb
import pytest
from typer.testing import CliRunner

from sqlwalk.cli import app

runner = CliRunner()


@pytest.fixture
def project(tmp_path):
    """An initialized project, with the cwd switched into it."""
    original_cwd = os.getcwd()
    os.chdir(tmp_path)
    try:
        result = runner.invoke(app, ["init", "demo"])
        assert result.exit_code == 0, result.output
        project_dir = tmp_path / "demo"
        os.chdir(project_dir)
        yield project_dir
    finally:
        os.chdir(original_cwd)


def _tables(project_dir, schema="transform"):
    conn = duckdb.connect(str(project_dir / "sqlwalk.duckdb"), read_only=True)
    try:
        rows = conn.execute(
            "SELECT table_name FROM information_schema.tables WHERE table_schema = ? ORDER BY 1",
            [schema],
        ).fetchall()
    finally:
        conn.close()
    return [r[0] for r in rows]


def test_init_scaffolds_project(project):
    assert (project / "project.yml").exists()
    assert (project / "transform" / "customers.sql").exists()
    assert (project / "transform" / "customer_names.sql").exists()


def test_init_refuses_existing_project(project):
    result = runner.invoke(app, ["init", "again", "--dir", str(project)])
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_run(project):
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 0, result.output
    assert "2 built, 0 errors" in result.output
    assert _tables(project) == ["customer_names", "customers"]
    assert (project / "transform" / "lineage.mmd").exists()


def test_run_cycle_exits_nonzero(project):
    (project / "transform" / "customers.sql").write_text("SELECT * FROM customer_names")
    result = runner.invoke(app, ["run"])
    assert result.exit_code == 1
    assert "Cycle detected" in result.output


def test_run_force_reports_failures(project):
    (project / "transform" / "broken.sql").write_text("SELECT * FROM nowhere")
    result = runner.invoke(app, ["run", "--force"])
    assert result.exit_code == 0, result.output
    assert "1 errors" in result.output
    assert "broken" in result.output


def test_run_with_env(project):
    (project / "project.yml").write_text(
        "name: demo\n"
        "environments:\n"
        "  prod:\n"
        "    database:\n"
        "      path: prod.duckdb\n"
        "    schema: prod\n"
    )
    result = runner.invoke(app, ["run", "--env", "prod"])
    assert result.exit_code == 0, result.output
    assert (project / "prod.duckdb").exists()


def test_run_outside_project(tmp_path):
    original_cwd = os.getcwd()
    try:
        os.chdir(tmp_path)
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1
        assert "No project.yml" in result.output
    finally:
        os.chdir(original_cwd)


def test_plan(project):
    result = runner.invoke(app, ["plan"])
    assert result.exit_code == 0, result.output
    assert "customers" in result.output
    assert "customer_names" in result.output


def test_plan_cycle(project):
    (project / "transform" / "customers.sql").write_text("SELECT * FROM customer_names")
    result = runner.invoke(app, ["plan"])
    assert result.exit_code == 1
    assert "Unresolved units" in result.output


def test_lineage(project):
    result = runner.invoke(app, ["lineage"])
    assert result.exit_code == 0, result.output
    text = (project / "transform" / "lineage.mmd").read_text()
    assert "customers --> customer_names" in text
    assert not (project / "sqlwalk.duckdb").exists()


def test_deps_json(project):
    (project / "transform" / "orders.sql").write_text("SELECT * FROM raw.orders JOIN customers USING (id)")
    result = runner.invoke(app, ["deps", "--json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["orders"]["depends_on"] == ["customers"]
    assert payload["orders"]["sources"] == ["raw.orders"]
    assert payload["customers"]["depends_on"] == []
