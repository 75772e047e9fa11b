"""Tests for the Mermaid lineage diagram."""

from __future__ import annotations

from pathlib import Path

import pytest

from sqlwalk.engine.errors import WorkspaceError
from sqlwalk.engine.transform import SQLUnit, generate_mermaid_diagram, render_mermaid


def _unit(name, *deps):
    return SQLUnit(name=name, path=Path(f"{name}.sql"), sql="", depends_on=frozenset(deps))


@pytest.fixture
def units():
    return {
        u.name: u
        for u in [
            _unit("orders", "raw.orders"),
            _unit("customers"),
            _unit("customer_orders", "orders", "customers"),
        ]
    }


def test_render_mermaid(units):
    assert render_mermaid(units) == (
        "graph TD\n"
        "    customer_orders\n"
        "    customers\n"
        "    orders\n"
        "    customers --> customer_orders\n"
        "    orders --> customer_orders\n"
    )


def test_external_tables_have_no_edges(units):
    assert "raw.orders" not in render_mermaid(units)


def test_empty():
    assert render_mermaid({}) == "graph TD\n"


def test_generate_writes_file(units, tmp_path):
    path = generate_mermaid_diagram(units, tmp_path)
    assert path == tmp_path / "lineage.mmd"
    assert path.read_text() == render_mermaid(units)


def test_generate_next_to_single_file(units, tmp_path):
    sql_file = tmp_path / "orders.sql"
    sql_file.write_text("SELECT 1")
    assert generate_mermaid_diagram(units, sql_file) == tmp_path / "lineage.mmd"


def test_generate_unwritable_dir(units, tmp_path):
    with pytest.raises(WorkspaceError, match="lineage"):
        generate_mermaid_diagram(units, tmp_path / "missing" / "dir")
