"""Tests for workspace discovery, the dependency graph and execution order."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from sqlwalk.engine.errors import CycleError, DuplicateUnitError, ParseError, WorkspaceError
from sqlwalk.engine.transform import (
    SQLUnit,
    build_graph,
    discover_sql_files,
    get_dependencies,
    get_execution_order,
    get_execution_tiers,
)


@pytest.fixture
def sql_dir(tmp_path):
    d = tmp_path / "transform"
    d.mkdir()
    return d


def _write(directory: Path, name: str, sql: str) -> Path:
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(sql)
    return path


def _unit(name, *deps):
    return SQLUnit(name=name, path=Path(f"{name}.sql"), sql="", depends_on=frozenset(deps))


# --- Discovery ---


class TestDiscoverSqlFiles:
    def test_recursive_and_sorted(self, sql_dir):
        _write(sql_dir, "b.sql", "SELECT 1")
        _write(sql_dir, "a/z.sql", "SELECT 1")
        _write(sql_dir, "a/y.SQL", "SELECT 1")
        _write(sql_dir, "notes.txt", "ignored")
        files = discover_sql_files(sql_dir)
        assert [p.relative_to(sql_dir).as_posix() for p in files] == ["a/y.SQL", "a/z.sql", "b.sql"]

    def test_single_file(self, sql_dir):
        path = _write(sql_dir, "only.sql", "SELECT 1")
        assert discover_sql_files(path) == [path]

    def test_python_files_skipped_with_warning(self, sql_dir, caplog):
        _write(sql_dir, "load.py", "print('hi')")
        _write(sql_dir, "model.sql", "SELECT 1")
        with caplog.at_level("WARNING", logger="sqlwalk.transform"):
            files = discover_sql_files(sql_dir)
        assert [p.name for p in files] == ["model.sql"]
        assert "load.py" in caplog.text

    def test_missing_root(self, tmp_path):
        with pytest.raises(WorkspaceError, match="not found"):
            discover_sql_files(tmp_path / "missing")

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
    def test_follows_symlinks_without_looping(self, sql_dir, tmp_path):
        shared = tmp_path / "shared"
        _write(shared, "shared_model.sql", "SELECT 1")
        (sql_dir / "linked").symlink_to(shared, target_is_directory=True)
        (shared / "loop").symlink_to(sql_dir, target_is_directory=True)
        names = [p.name for p in discover_sql_files(sql_dir)]
        assert names.count("shared_model.sql") == 1


# --- Dependency map ---


class TestGetDependencies:
    def test_source_and_dependent(self, sql_dir):
        _write(sql_dir, "source.sql", "SELECT 1 AS id")
        _write(sql_dir, "dependent.sql", "SELECT * FROM source")
        units = get_dependencies(sql_dir)
        assert set(units) == {"source", "dependent"}
        assert units["dependent"].depends_on == {"source"}
        assert units["source"].depends_on == frozenset()

    def test_join_of_two_sources(self, sql_dir):
        _write(sql_dir, "source1.sql", "SELECT 1 AS id")
        _write(sql_dir, "source2.sql", "SELECT 1 AS id, 'x' AS label")
        _write(sql_dir, "combined.sql", "SELECT * FROM source1 JOIN source2 ON source1.id = source2.id")
        units = get_dependencies(sql_dir)
        assert units["combined"].depends_on == {"source1", "source2"}

    def test_external_dependencies_kept(self, sql_dir):
        _write(sql_dir, "orders.sql", "SELECT * FROM raw.orders JOIN stg_customers USING (customer_id)")
        _write(sql_dir, "stg_customers.sql", "SELECT * FROM raw.customers")
        units = get_dependencies(sql_dir)
        orders = units["orders"]
        assert orders.depends_on == {"raw.orders", "stg_customers"}
        assert orders.known_dependencies(units) == ["stg_customers"]
        assert orders.external_dependencies(units) == ["raw.orders"]

    def test_self_reference_removed(self, sql_dir):
        _write(
            sql_dir,
            "events.sql",
            "CREATE TABLE IF NOT EXISTS events (id INT);\nSELECT * FROM events UNION ALL SELECT * FROM raw_events",
        )
        units = get_dependencies(sql_dir)
        assert units["events"].depends_on == {"raw_events"}

    def test_cte_named_like_unit_is_not_a_dependency(self, sql_dir):
        _write(sql_dir, "summary.sql", "WITH summary AS (SELECT * FROM base) SELECT * FROM summary")
        units = get_dependencies(sql_dir)
        assert units["summary"].depends_on == {"base"}

    def test_reference_case_differs_from_file_name(self, sql_dir):
        _write(sql_dir, "source.sql", "SELECT 1 AS id")
        _write(sql_dir, "dependent.sql", "SELECT * FROM Source")
        units = get_dependencies(sql_dir)
        assert units["dependent"].depends_on == {"Source"}
        assert units["dependent"].known_dependencies(units) == ["source"]
        assert units["dependent"].external_dependencies(units) == []
        assert get_execution_order(units) == ["source", "dependent"]

    def test_pivot_statement_depends_on_source(self, sql_dir):
        _write(sql_dir, "z_src.sql", "SELECT 'x' AS k, 1 AS v")
        _write(sql_dir, "a_pivot.sql", "PIVOT z_src ON k USING sum(v)")
        units = get_dependencies(sql_dir)
        assert units["a_pivot"].depends_on == {"z_src"}
        assert get_execution_order(units) == ["z_src", "a_pivot"]

    def test_inline_config_recorded(self, sql_dir):
        _write(sql_dir, "v.sql", "-- @config: {output: {type: view}}\nSELECT 1")
        units = get_dependencies(sql_dir)
        assert units["v"].config.output.output_type.value == "view"

    def test_empty_workspace(self, sql_dir):
        assert get_dependencies(sql_dir) == {}
        assert get_execution_order({}) == []

    def test_duplicate_unit_names(self, sql_dir):
        _write(sql_dir, "a/orders.sql", "SELECT 1")
        _write(sql_dir, "b/orders.sql", "SELECT 2")
        with pytest.raises(DuplicateUnitError) as exc_info:
            get_dependencies(sql_dir)
        assert exc_info.value.name == "orders"
        assert "a/orders.sql" in str(exc_info.value).replace(os.sep, "/")

    def test_duplicate_names_differing_in_case(self, sql_dir):
        _write(sql_dir, "a/Orders.sql", "SELECT 1")
        _write(sql_dir, "b/orders.sql", "SELECT 2")
        with pytest.raises(DuplicateUnitError) as exc_info:
            get_dependencies(sql_dir)
        assert exc_info.value.name == "orders"

    def test_parse_error_names_file(self, sql_dir):
        bad = _write(sql_dir, "broken.sql", "SELECT * FROM (SELECT 1")
        with pytest.raises(ParseError) as exc_info:
            get_dependencies(sql_dir)
        assert exc_info.value.path == bad

    def test_non_strict_skips_broken_units(self, sql_dir):
        _write(sql_dir, "broken.sql", "SELECT * FROM (SELECT 1")
        _write(sql_dir, "fine.sql", "SELECT 1")
        units = get_dependencies(sql_dir, strict=False)
        assert set(units) == {"fine"}

    def test_env_placeholders_substituted_before_parsing(self, sql_dir, monkeypatch):
        monkeypatch.setenv("SOURCE_TABLE", "landing_orders")
        _write(sql_dir, "orders.sql", "SELECT * FROM {{ SOURCE_TABLE }}")
        units = get_dependencies(sql_dir)
        assert units["orders"].depends_on == {"landing_orders"}


# --- Graph and ordering ---


class TestExecutionOrder:
    def test_dependencies_first(self):
        units = {u.name: u for u in [_unit("dependent", "source"), _unit("source")]}
        assert get_execution_order(units) == ["source", "dependent"]

    def test_external_names_are_not_nodes(self):
        units = {u.name: u for u in [_unit("orders", "raw.orders")]}
        assert build_graph(units) == {"orders": set()}
        assert get_execution_order(units) == ["orders"]

    def test_edges_match_names_ignoring_case(self):
        units = {u.name: u for u in [_unit("Staging"), _unit("report", "STAGING", "raw.events")]}
        assert build_graph(units) == {"Staging": {"report"}, "report": set()}

    def test_graph_edges_point_downstream(self):
        units = {u.name: u for u in [_unit("a"), _unit("b", "a"), _unit("c", "a", "b")]}
        assert build_graph(units) == {"a": {"b", "c"}, "b": {"c"}, "c": set()}

    def test_order_is_deterministic(self):
        units = {u.name: u for u in [_unit("zeta"), _unit("alpha"), _unit("mid", "zeta", "alpha")]}
        assert get_execution_order(units) == ["alpha", "zeta", "mid"]
        reversed_units = dict(reversed(list(units.items())))
        assert get_execution_order(reversed_units) == ["alpha", "zeta", "mid"]

    def test_tiers(self):
        units = {
            u.name: u
            for u in [
                _unit("source1"),
                _unit("source2"),
                _unit("combined", "source1", "source2"),
                _unit("report", "combined"),
            ]
        }
        assert get_execution_tiers(units) == [["source1", "source2"], ["combined"], ["report"]]

    def test_cycle(self):
        units = {u.name: u for u in [_unit("a", "b"), _unit("b", "a")]}
        with pytest.raises(CycleError) as exc_info:
            get_execution_order(units)
        assert set(exc_info.value.cycle) == {"a", "b"}
        assert exc_info.value.unresolved == {"a", "b"}

    def test_cycle_reports_blocked_downstream(self):
        units = {
            u.name: u
            for u in [_unit("root"), _unit("a", "root", "b"), _unit("b", "a"), _unit("tail", "b")]
        }
        with pytest.raises(CycleError) as exc_info:
            get_execution_order(units)
        assert exc_info.value.unresolved == {"a", "b", "tail"}

    def test_cycle_from_workspace(self, sql_dir):
        _write(sql_dir, "a.sql", "SELECT * FROM b")
        _write(sql_dir, "b.sql", "SELECT * FROM a")
        units = get_dependencies(sql_dir)
        with pytest.raises(CycleError, match="Cycle detected"):
            get_execution_order(units)
