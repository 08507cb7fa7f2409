"""In-memory editable grid: the authoritative table state during an edit session.

The grid stores raw string values only.  Every structural edit applies in
place and marks the grid dirty; the dirty flag is cleared by the owner once
a save has been confirmed (``snapshot()`` never clears it, so a failed save
leaves the grid dirty).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Iterable

from tablesmith.errors import (
    DuplicateKey,
    InvalidColumn,
    NoColumns,
    RowOutOfRange,
    UnknownColumn,
)
from tablesmith.models import Align, Column, ColumnType, Row, TableSnapshot


@dataclass(frozen=True)
class CellPosition:
    """A focused editor cell (0-based row, 0-based column)."""

    row: int
    col: int


class GridModel:
    """Mutable schema + rows pair with a dirty flag and row selection.

    Args:
        columns: Initial column schema.
        rows: Initial rows (deep-copied).
    """

    def __init__(
        self,
        columns: Iterable[Column] = (),
        rows: Iterable[Row] = (),
    ) -> None:
        self._columns: list[Column] = list(columns)
        self._rows: list[Row] = [copy.deepcopy(dict(r)) for r in rows]
        self._dirty = False
        self._selected: set[int] = set()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def columns(self) -> list[Column]:
        return list(self._columns)

    @property
    def rows(self) -> list[Row]:
        """Live row dicts (callers must use the mutation API to edit)."""
        return self._rows

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def n_rows(self) -> int:
        return len(self._rows)

    def column_keys(self) -> list[str]:
        return [c.key for c in self._columns]

    def get_column(self, key: str) -> Column:
        for col in self._columns:
            if col.key == key:
                return col
        raise UnknownColumn(key)

    def has_column(self, key: str) -> bool:
        return any(c.key == key for c in self._columns)

    def get_cell(self, row_index: int, column_key: str) -> str:
        """Return the raw value, ``""`` when the row or key is missing."""
        if not 0 <= row_index < len(self._rows):
            return ""
        return self._rows[row_index].get(column_key, "")

    def _empty_row(self) -> Row:
        return {key: "" for key in self.column_keys()}

    def _touch(self) -> None:
        self._dirty = True

    # ------------------------------------------------------------------
    # Cell edits
    # ------------------------------------------------------------------

    def set_cell(self, row_index: int, column_key: str, value: str) -> bool:
        """Set a raw cell value.

        Out-of-range row indices (negative included) are ignored.  No
        coercion or validation: any string is accepted.

        Returns:
            True if the cell was written.
        """
        if not 0 <= row_index < len(self._rows):
            return False
        self._rows[row_index][column_key] = "" if value is None else str(value)
        self._touch()
        return True

    # ------------------------------------------------------------------
    # Row edits
    # ------------------------------------------------------------------

    def add_row(self) -> int:
        """Append an empty row.  Returns its index.

        Raises:
            NoColumns: The schema is empty.
        """
        if not self._columns:
            raise NoColumns()
        self._rows.append(self._empty_row())
        self._touch()
        return len(self._rows) - 1

    def insert_row(self, index: int) -> int:
        """Insert an empty row at *index* (clamped to ``[0, n_rows]``)."""
        index = max(0, min(index, len(self._rows)))
        self._rows.insert(index, self._empty_row())
        self._selected = {i + 1 if i >= index else i for i in self._selected}
        self._touch()
        return index

    def duplicate_row(self, index: int) -> int:
        """Insert an independent copy of row *index* right after it.

        Raises:
            RowOutOfRange: *index* is not a current row.
        """
        if not 0 <= index < len(self._rows):
            raise RowOutOfRange(index, len(self._rows))
        self._rows.insert(index + 1, copy.deepcopy(self._rows[index]))
        self._selected = {i + 1 if i > index else i for i in self._selected}
        self._touch()
        return index + 1

    def delete_rows(self, indices: Iterable[int]) -> int:
        """Delete every row in *indices*, highest index first.

        Out-of-range indices are skipped.  An empty set is a no-op.

        Returns:
            Number of rows removed.
        """
        targets = set(indices)
        if not targets:
            return 0
        removed = 0
        for idx in sorted(targets, reverse=True):
            if 0 <= idx < len(self._rows):
                del self._rows[idx]
                removed += 1
        self._selected = {
            i - sum(1 for t in targets if 0 <= t < i)
            for i in self._selected
            if i not in targets
        }
        self._touch()
        return removed

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_row(self, index: int, selected: bool = True) -> None:
        if not 0 <= index < len(self._rows):
            return
        if selected:
            self._selected.add(index)
        else:
            self._selected.discard(index)

    def select_all(self, selected: bool = True) -> None:
        self._selected = set(range(len(self._rows))) if selected else set()

    def clear_selection(self) -> None:
        self._selected.clear()

    @property
    def selected_rows(self) -> list[int]:
        return sorted(self._selected)

    def delete_selected(self) -> int:
        """Delete the selected rows and clear the selection."""
        removed = self.delete_rows(self._selected)
        self._selected.clear()
        return removed

    # ------------------------------------------------------------------
    # Column edits
    # ------------------------------------------------------------------

    def insert_column(
        self,
        index: int,
        key: str,
        label: str,
        type: ColumnType | str = ColumnType.text,
        align: Align | str = Align.left,
        width: str = "",
    ) -> Column:
        """Insert a column at *index* (clamped) and blank it on every row.

        No slugification is done here; see :func:`tablesmith.keys.suggest_key`.

        Raises:
            InvalidColumn: *key* is empty.
            DuplicateKey: *key* already exists (exact, case-sensitive match).
        """
        if not key:
            raise InvalidColumn("Column key must not be empty")
        if self.has_column(key):
            raise DuplicateKey(key)
        col = Column(key=key, label=label, type=type, align=align, width=width)
        index = max(0, min(index, len(self._columns)))
        self._columns.insert(index, col)
        for row in self._rows:
            row[key] = ""
        self._touch()
        return col

    def add_column(
        self,
        key: str,
        label: str,
        type: ColumnType | str = ColumnType.text,
        align: Align | str = Align.left,
        width: str = "",
    ) -> Column:
        """Append a column; see :meth:`insert_column`."""
        return self.insert_column(len(self._columns), key, label, type, align, width)

    def update_column(self, key: str, **changes: str) -> Column:
        """Replace label/type/align/width of an existing column.

        Raises:
            UnknownColumn: No column with *key*.
            InvalidColumn: Attempt to change the key.
        """
        if "key" in changes:
            raise InvalidColumn("Column keys cannot be renamed")
        for idx, col in enumerate(self._columns):
            if col.key == key:
                updated = Column(**{**col.model_dump(), **changes})
                self._columns[idx] = updated
                self._touch()
                return updated
        raise UnknownColumn(key)

    def delete_column(self, key: str) -> Column:
        """Remove a column and its values from every row.

        Raises:
            UnknownColumn: No column with *key*.
        """
        for idx, col in enumerate(self._columns):
            if col.key == key:
                del self._columns[idx]
                for row in self._rows:
                    row.pop(key, None)
                self._touch()
                return col
        raise UnknownColumn(key)

    # ------------------------------------------------------------------
    # Whole-table operations
    # ------------------------------------------------------------------

    def replace(self, columns: Iterable[Column], rows: Iterable[Row]) -> None:
        """Replace schema and rows wholesale (import result)."""
        self._columns = list(columns)
        self._rows = [copy.deepcopy(dict(r)) for r in rows]
        self._selected.clear()
        self._touch()

    def snapshot(self) -> TableSnapshot:
        """Return an immutable deep copy of the current state."""
        return TableSnapshot.capture(self._columns, self._rows)

    def mark_clean(self) -> None:
        """Clear the dirty flag after the owner confirmed a save."""
        self._dirty = False

    # ------------------------------------------------------------------
    # Keyboard navigation
    # ------------------------------------------------------------------

    def next_cell(self, pos: CellPosition, key: str, shift: bool = False) -> CellPosition | None:
        """Return the cell focused after pressing *key* at *pos*.

        ``tab`` moves right (wrapping to the next row's first cell),
        ``shift+tab`` moves left (wrapping to the previous row's last cell),
        ``enter`` moves down one row in the same column and ``shift+enter`` up.
        Returns None when the move would leave the grid.
        """
        n_cols = len(self._columns)
        n_rows = len(self._rows)
        if n_cols == 0 or n_rows == 0:
            return None
        key = key.lower()
        if key == "tab":
            if not shift:
                if pos.col + 1 < n_cols:
                    return CellPosition(pos.row, pos.col + 1)
                if pos.row + 1 < n_rows:
                    return CellPosition(pos.row + 1, 0)
                return None
            if pos.col > 0:
                return CellPosition(pos.row, pos.col - 1)
            if pos.row > 0:
                return CellPosition(pos.row - 1, n_cols - 1)
            return None
        if key == "enter":
            row = pos.row - 1 if shift else pos.row + 1
            if 0 <= row < n_rows:
                return CellPosition(row, pos.col)
            return None
        return None
