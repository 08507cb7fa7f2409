"""Tests for the in-memory editable grid."""

from __future__ import annotations

import pytest

from tablesmith.errors import DuplicateKey, InvalidColumn, NoColumns, RowOutOfRange, UnknownColumn
from tablesmith.grid import CellPosition, GridModel
from tablesmith.models import Align, Column, ColumnType


def _grid(values: list[str] | None = None) -> GridModel:
    values = ["A", "B", "C", "D"] if values is None else values
    columns = [Column(key="name", label="Name"), Column(key="qty", label="Qty", type=ColumnType.number)]
    rows = [{"name": v, "qty": str(i)} for i, v in enumerate(values)]
    return GridModel(columns, rows)


def _names(grid: GridModel) -> list[str]:
    return [r["name"] for r in grid.rows]


# ────────────────────────────────────────────────────────────────
# Cells
# ────────────────────────────────────────────────────────────────


class TestCells:
    def test_new_grid_is_clean(self) -> None:
        assert not _grid().dirty

    def test_set_cell_marks_dirty(self) -> None:
        grid = _grid()
        assert grid.set_cell(1, "qty", "abc")
        assert grid.get_cell(1, "qty") == "abc"
        assert grid.dirty

    @pytest.mark.parametrize("index", [-1, 4, 99])
    def test_set_cell_out_of_range_ignored(self, index: int) -> None:
        grid = _grid()
        assert not grid.set_cell(index, "name", "x")
        assert not grid.dirty
        assert _names(grid) == ["A", "B", "C", "D"]

    def test_get_cell_missing(self) -> None:
        grid = _grid()
        assert grid.get_cell(10, "name") == ""
        assert grid.get_cell(0, "nope") == ""

    def test_constructor_copies_rows(self) -> None:
        rows = [{"name": "A", "qty": "1"}]
        grid = GridModel([Column(key="name"), Column(key="qty")], rows)
        rows[0]["name"] = "changed"
        assert grid.get_cell(0, "name") == "A"


# ────────────────────────────────────────────────────────────────
# Rows
# ────────────────────────────────────────────────────────────────


class TestRows:
    def test_add_row_is_blank(self) -> None:
        grid = _grid()
        idx = grid.add_row()
        assert idx == 4
        assert grid.rows[idx] == {"name": "", "qty": ""}

    def test_add_row_without_columns(self) -> None:
        with pytest.raises(NoColumns):
            GridModel().add_row()

    def test_insert_row_clamped(self) -> None:
        grid = _grid()
        assert grid.insert_row(-5) == 0
        assert grid.insert_row(100) == grid.n_rows - 1
        assert grid.rows[0]["name"] == ""

    def test_duplicate_is_independent(self) -> None:
        grid = _grid()
        new = grid.duplicate_row(1)
        assert new == 2
        assert _names(grid) == ["A", "B", "B", "C", "D"]
        grid.set_cell(2, "name", "B2")
        assert grid.get_cell(1, "name") == "B"

    def test_duplicate_out_of_range(self) -> None:
        with pytest.raises(RowOutOfRange):
            _grid().duplicate_row(4)

    def test_delete_rows_by_original_index(self) -> None:
        grid = _grid()
        assert grid.delete_rows({1, 3}) == 2
        assert _names(grid) == ["A", "C"]

    def test_delete_rows_skips_out_of_range(self) -> None:
        grid = _grid()
        assert grid.delete_rows([0, 42]) == 1
        assert _names(grid) == ["B", "C", "D"]

    def test_delete_nothing_is_noop(self) -> None:
        grid = _grid()
        assert grid.delete_rows(set()) == 0
        assert not grid.dirty


class TestSelection:
    def test_delete_selected(self) -> None:
        grid = _grid()
        grid.select_row(0)
        grid.select_row(2)
        assert grid.selected_rows == [0, 2]
        assert grid.delete_selected() == 2
        assert _names(grid) == ["B", "D"]
        assert grid.selected_rows == []

    def test_select_all_and_none(self) -> None:
        grid = _grid()
        grid.select_all()
        assert grid.selected_rows == [0, 1, 2, 3]
        grid.select_all(False)
        assert grid.selected_rows == []

    def test_selection_follows_row_shifts(self) -> None:
        grid = _grid()
        grid.select_row(2)
        grid.insert_row(0)
        assert grid.selected_rows == [3]
        grid.delete_rows({1})
        assert grid.selected_rows == [2]
        assert grid.rows[2]["name"] == "C"

    def test_select_out_of_range_ignored(self) -> None:
        grid = _grid()
        grid.select_row(9)
        assert grid.selected_rows == []


# ────────────────────────────────────────────────────────────────
# Columns
# ────────────────────────────────────────────────────────────────


class TestColumns:
    def test_add_column_blanks_every_row(self) -> None:
        grid = _grid()
        grid.add_column("price", "Price", ColumnType.currency, Align.right)
        assert grid.column_keys() == ["name", "qty", "price"]
        assert all(r["price"] == "" for r in grid.rows)
        assert grid.get_column("price").align == Align.right

    def test_insert_column_position(self) -> None:
        grid = _grid()
        grid.insert_column(0, "id", "ID")
        assert grid.column_keys() == ["id", "name", "qty"]

    def test_duplicate_key_leaves_schema_unchanged(self) -> None:
        grid = _grid()
        with pytest.raises(DuplicateKey) as exc:
            grid.add_column("qty", "Quantity")
        assert exc.value.key == "qty"
        assert grid.column_keys() == ["name", "qty"]
        assert grid.get_column("qty").label == "Qty"
        assert not grid.dirty

    def test_keys_are_case_sensitive(self) -> None:
        grid = _grid()
        grid.add_column("Qty", "Other")
        assert grid.column_keys() == ["name", "qty", "Qty"]

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(InvalidColumn):
            _grid().add_column("", "Blank")

    def test_update_column(self) -> None:
        grid = _grid()
        col = grid.update_column("qty", label="Quantity", type="percent", width="80px")
        assert col.label == "Quantity"
        assert col.type == ColumnType.percent
        assert grid.get_column("qty").width == "80px"

    def test_update_column_cannot_rename(self) -> None:
        with pytest.raises(InvalidColumn):
            _grid().update_column("qty", key="amount")

    def test_update_unknown_column(self) -> None:
        with pytest.raises(UnknownColumn):
            _grid().update_column("missing", label="x")

    def test_delete_column_removes_values(self) -> None:
        grid = _grid()
        grid.delete_column("qty")
        assert grid.column_keys() == ["name"]
        assert all(set(r) == {"name"} for r in grid.rows)

    def test_delete_unknown_column(self) -> None:
        with pytest.raises(UnknownColumn):
            _grid().delete_column("missing")


# ────────────────────────────────────────────────────────────────
# Snapshot / dirty
# ────────────────────────────────────────────────────────────────


class TestSnapshot:
    def test_snapshot_does_not_clear_dirty(self) -> None:
        grid = _grid()
        grid.set_cell(0, "name", "Z")
        snap = grid.snapshot()
        assert grid.dirty
        assert snap.rows[0]["name"] == "Z"

    def test_snapshot_is_isolated(self) -> None:
        grid = _grid()
        snap = grid.snapshot()
        grid.set_cell(0, "name", "Z")
        assert snap.rows[0]["name"] == "A"
        with pytest.raises(TypeError):
            snap.rows[0]["name"] = "nope"  # type: ignore[index]

    def test_equal_snapshots(self) -> None:
        grid = _grid()
        assert grid.snapshot() == grid.snapshot()

    def test_mark_clean(self) -> None:
        grid = _grid()
        grid.add_row()
        grid.mark_clean()
        assert not grid.dirty

    def test_replace(self) -> None:
        grid = _grid()
        grid.select_row(0)
        grid.replace([Column(key="x")], [{"x": "1"}])
        assert grid.column_keys() == ["x"]
        assert grid.rows == [{"x": "1"}]
        assert grid.selected_rows == []
        assert grid.dirty


# ────────────────────────────────────────────────────────────────
# Keyboard navigation
# ────────────────────────────────────────────────────────────────


class TestNextCell:
    def test_tab_moves_right_then_wraps(self) -> None:
        grid = _grid()
        assert grid.next_cell(CellPosition(0, 0), "tab") == CellPosition(0, 1)
        assert grid.next_cell(CellPosition(0, 1), "tab") == CellPosition(1, 0)
        assert grid.next_cell(CellPosition(3, 1), "tab") is None

    def test_shift_tab_moves_left_then_wraps(self) -> None:
        grid = _grid()
        assert grid.next_cell(CellPosition(1, 1), "tab", shift=True) == CellPosition(1, 0)
        assert grid.next_cell(CellPosition(1, 0), "tab", shift=True) == CellPosition(0, 1)
        assert grid.next_cell(CellPosition(0, 0), "tab", shift=True) is None

    def test_enter_moves_vertically(self) -> None:
        grid = _grid()
        assert grid.next_cell(CellPosition(0, 1), "Enter") == CellPosition(1, 1)
        assert grid.next_cell(CellPosition(3, 1), "enter") is None
        assert grid.next_cell(CellPosition(2, 0), "enter", shift=True) == CellPosition(1, 0)

    def test_other_keys(self) -> None:
        assert _grid().next_cell(CellPosition(0, 0), "escape") is None

    def test_empty_grid(self) -> None:
        assert GridModel().next_cell(CellPosition(0, 0), "tab") is None
