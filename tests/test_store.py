"""Tests for persistence adapters."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from tablesmith.errors import NotFound, PersistenceFailure
from tablesmith.grid import GridModel
from tablesmith.models import Column, ColumnType, DisplayOptions
from tablesmith.store import MemoryTableStore, YamlTableStore, is_valid_table_id


def _snapshot(values=("Ann", "Bob")):
    grid = GridModel(
        [Column(key="name", label="Name"), Column(key="age", label="Age", type=ColumnType.number)],
        [{"name": v, "age": str(30 + i)} for i, v in enumerate(values)],
    )
    return grid.snapshot()


@pytest.fixture(params=["memory", "yaml"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return MemoryTableStore()
    return YamlTableStore(tmp_path)


# ────────────────────────────────────────────────────────────────
# Shared behaviour
# ────────────────────────────────────────────────────────────────


class TestStoreContract:
    def test_round_trip(self, store) -> None:
        opts = DisplayOptions(sortable=True, custom_class="wide")
        store.save("people", _snapshot(), opts, title="People")
        table = store.load("people")
        assert table.table_id == "people"
        assert table.title == "People"
        assert [c.key for c in table.columns] == ["name", "age"]
        assert table.columns[1].type == ColumnType.number
        assert table.rows == [{"name": "Ann", "age": "30"}, {"name": "Bob", "age": "31"}]
        assert table.options == opts

    def test_identical_save_not_rewritten(self, store) -> None:
        first = store.save("people", _snapshot(), DisplayOptions(), title="People")
        second = store.save("people", _snapshot(), DisplayOptions(), title="People")
        assert first.written
        assert not second.written
        assert first.content_hash == second.content_hash

    def test_changed_save_rewritten(self, store) -> None:
        first = store.save("people", _snapshot(), title="People")
        second = store.save("people", _snapshot(("Ann", "Cy")))
        assert second.written
        assert second.content_hash != first.content_hash
        assert store.load("people").rows[1]["name"] == "Cy"

    def test_title_and_options_default_to_stored(self, store) -> None:
        store.save("t", _snapshot(), DisplayOptions(striped=False), title="Kept")
        store.save("t", _snapshot(("Zed",)))
        table = store.load("t")
        assert table.title == "Kept"
        assert table.options.striped is False

    def test_load_missing(self, store) -> None:
        with pytest.raises(NotFound):
            store.load("nope")

    @pytest.mark.parametrize("bad", ["../etc", "a b", ""])
    def test_invalid_ids(self, store, bad: str) -> None:
        with pytest.raises(NotFound):
            store.load(bad)
        with pytest.raises(PersistenceFailure):
            store.save(bad, _snapshot())

    def test_save_options_only(self, store) -> None:
        store.save("t", _snapshot(), title="T")
        ack = store.save_options("t", DisplayOptions(searchable=True))
        assert ack.written
        table = store.load("t")
        assert table.options.searchable
        assert len(table.rows) == 2

    def test_save_options_missing(self, store) -> None:
        with pytest.raises(NotFound):
            store.save_options("nope", DisplayOptions())

    def test_create_slugs_and_suffixes(self, store) -> None:
        assert store.create("Monthly Report").table_id == "monthly-report"
        assert store.create("Monthly Report").table_id == "monthly-report-2"
        assert store.create("!!!").table_id == "table"
        table = store.load("monthly-report")
        assert table.title == "Monthly Report"
        assert table.columns == []

    def test_create_explicit_id(self, store) -> None:
        store.create("Anything", table_id="fixed")
        assert store.exists("fixed")
        with pytest.raises(PersistenceFailure):
            store.create("Again", table_id="fixed")
        with pytest.raises(PersistenceFailure):
            store.create("Bad", table_id="no/slash")

    def test_list_tables(self, store) -> None:
        store.save("b", _snapshot(), title="Bee")
        store.create("Aye", table_id="a")
        summaries = store.list_tables()
        assert [s.table_id for s in summaries] == ["a", "b"]
        assert summaries[1].n_rows == 2
        assert summaries[1].n_columns == 2

    def test_delete(self, store) -> None:
        store.create("Gone", table_id="gone")
        store.delete("gone")
        assert not store.exists("gone")
        with pytest.raises(NotFound):
            store.delete("gone")


# ────────────────────────────────────────────────────────────────
# YAML specifics
# ────────────────────────────────────────────────────────────────


class TestYamlStore:
    def test_file_layout(self, tmp_path: Path) -> None:
        store = YamlTableStore(tmp_path)
        store.save("people", _snapshot(), title="People")
        path = tmp_path / "tables" / "people.yaml"
        assert path.exists()
        assert not (tmp_path / "tables" / "people.yaml.tmp").exists()
        data = yaml.safe_load(path.read_text())
        assert data["rows"][0] == {"name": "Ann", "age": "30"}

    def test_numeric_looking_values_stay_strings(self, tmp_path: Path) -> None:
        path = tmp_path / "tables" / "hand.yaml"
        path.parent.mkdir()
        path.write_text("title: Hand\ncolumns:\n  - {key: n}\nrows:\n  - {n: 42}\n  - {n: null}\n")
        table = YamlTableStore(tmp_path).load("hand")
        assert table.rows == [{"n": "42"}, {"n": ""}]

    def test_unknown_column_type_degrades_to_text(self, tmp_path: Path) -> None:
        path = tmp_path / "tables" / "old.yaml"
        path.parent.mkdir()
        path.write_text("columns:\n  - {key: x, type: sparkline, align: justify}\nrows: []\n")
        col = YamlTableStore(tmp_path).load("old").columns[0]
        assert col.type == ColumnType.text
        assert col.align.value == "left"

    def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "tables" / "broken.yaml"
        path.parent.mkdir()
        path.write_text("columns: [unclosed\n")
        store = YamlTableStore(tmp_path)
        with pytest.raises(PersistenceFailure):
            store.load("broken")
        assert store.list_tables() == []

    def test_non_mapping_file(self, tmp_path: Path) -> None:
        path = tmp_path / "tables" / "list.yaml"
        path.parent.mkdir()
        path.write_text("- a\n- b\n")
        with pytest.raises(PersistenceFailure):
            YamlTableStore(tmp_path).load("list")

    def test_empty_project(self, tmp_path: Path) -> None:
        assert YamlTableStore(tmp_path).list_tables() == []


def test_is_valid_table_id() -> None:
    assert is_valid_table_id("pricing-2024_v2")
    assert not is_valid_table_id("a.b")
    assert not is_valid_table_id(None)
