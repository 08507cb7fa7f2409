"""Shared service layer for the tablesmith editor and render directive.

This module encapsulates all table operations so that both the FastAPI
server and the CLI share the same logic.  It is the single place that opens
editor sessions, applies grid edits, runs imports, saves through the store,
and renders published tables.
"""

from __future__ import annotations

import threading
import uuid
from pathlib import Path
from typing import Any

import polars as pl

from tablesmith.errors import NotFound, PersistenceFailure, SaveInProgress, TableError
from tablesmith.grid import CellPosition, GridModel
from tablesmith.importers import ImportResult, import_csv, import_html
from tablesmith.keys import suggest_key
from tablesmith.logging.events import (
    EventType,
    emit_error,
    emit_info,
    emit_warning,
    get_sink,
)
from tablesmith.models import Align, ColumnType, DisplayOptions, TableDefinition
from tablesmith.project import DEFAULT_CONFIG, load_project_config
from tablesmith.render import RenderSettings, render_table
from tablesmith.store import (
    MemoryTableStore,
    SaveAck,
    TableStore,
    YamlTableStore,
    is_valid_table_id,
)
from tablesmith.ui.view_transforms import TableViewRequest, apply_view
from tablesmith.xlsx_import import import_xlsx

INVALID_ID_MARKER = "<!-- tablesmith: Invalid ID -->"


class EditorSession:
    """One open editor for one table.

    Owns the :class:`GridModel` for the duration of the edit and allows a
    single outstanding save at a time.

    Parameters
    ----------
    store : TableStore
        Where ``save()`` writes.
    table : TableDefinition
        Loaded table state.
    settings : RenderSettings
        Used for live previews.
    """

    def __init__(
        self,
        store: TableStore,
        table: TableDefinition,
        settings: RenderSettings | None = None,
    ) -> None:
        self.store = store
        self.table_id = table.table_id
        self.session_id = uuid.uuid4().hex
        self.title = table.title
        self.options = table.options
        self.grid = GridModel(table.columns, table.rows)
        self.settings = settings or RenderSettings()
        self.last_ack: SaveAck | None = None
        self._meta_dirty = False
        self._save_lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def dirty(self) -> bool:
        return self.grid.dirty or self._meta_dirty

    @property
    def saving(self) -> bool:
        return self._save_lock.locked()

    def _ctx(self, **extra: Any) -> dict[str, Any]:
        return {"table_id": self.table_id, "session_id": self.session_id, **extra}

    def state(self) -> dict[str, Any]:
        """Full editor state as a JSON-ready dict."""
        return {
            "table_id": self.table_id,
            "session_id": self.session_id,
            "title": self.title,
            "columns": [c.model_dump(mode="json") for c in self.grid.columns],
            "rows": [dict(r) for r in self.grid.rows],
            "options": self.options.model_dump(mode="json"),
            "selected_rows": self.grid.selected_rows,
            "dirty": self.dirty,
            "saving": self.saving,
        }

    def _result(self, **extra: Any) -> dict[str, Any]:
        return {"ok": True, "n_rows": self.grid.n_rows, "n_cols": len(self.grid.columns), "dirty": self.dirty, **extra}

    # ------------------------------------------------------------------
    # Cell / row edits
    # ------------------------------------------------------------------

    def set_cells(self, edits: list[dict[str, Any]]) -> dict[str, Any]:
        """Apply a batch of ``{"row": int, "key": str, "value": str}`` edits.

        Out-of-range rows are skipped (and counted).
        """
        applied = 0
        for edit in edits:
            if self.grid.set_cell(int(edit["row"]), str(edit["key"]), edit.get("value", "")):
                applied += 1
        return self._result(applied=applied, skipped=len(edits) - applied)

    def add_row(self) -> dict[str, Any]:
        return self._result(row=self.grid.add_row())

    def insert_row(self, index: int) -> dict[str, Any]:
        return self._result(row=self.grid.insert_row(index))

    def duplicate_row(self, index: int) -> dict[str, Any]:
        return self._result(row=self.grid.duplicate_row(index))

    def delete_rows(self, indices: list[int]) -> dict[str, Any]:
        return self._result(removed=self.grid.delete_rows(indices))

    def select_rows(self, indices: list[int], selected: bool = True) -> dict[str, Any]:
        for idx in indices:
            self.grid.select_row(idx, selected)
        return self._result(selected_rows=self.grid.selected_rows)

    def select_all(self, selected: bool = True) -> dict[str, Any]:
        self.grid.select_all(selected)
        return self._result(selected_rows=self.grid.selected_rows)

    def delete_selected(self) -> dict[str, Any]:
        return self._result(removed=self.grid.delete_selected())

    def navigate(self, row: int, col: int, key: str, shift: bool = False) -> dict[str, Any]:
        """Cell focused after *key* (``tab``/``enter``) at (*row*, *col*).

        ``target`` is None when the move would leave the grid.
        """
        target = self.grid.next_cell(CellPosition(row, col), key, shift)
        if target is None:
            return {"ok": True, "target": None}
        return {"ok": True, "target": {"row": target.row, "col": target.col}}

    # ------------------------------------------------------------------
    # Column edits
    # ------------------------------------------------------------------

    def add_column(
        self,
        key: str,
        label: str,
        type: ColumnType | str = ColumnType.text,
        align: Align | str = Align.left,
        width: str = "",
        index: int | None = None,
    ) -> dict[str, Any]:
        if index is None:
            col = self.grid.add_column(key, label, type, align, width)
        else:
            col = self.grid.insert_column(index, key, label, type, align, width)
        return self._result(column=col.model_dump(mode="json"))

    def update_column(self, key: str, **changes: str) -> dict[str, Any]:
        col = self.grid.update_column(key, **changes)
        return self._result(column=col.model_dump(mode="json"))

    def delete_column(self, key: str) -> dict[str, Any]:
        col = self.grid.delete_column(key)
        return self._result(column=col.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Title / options
    # ------------------------------------------------------------------

    def set_title(self, title: str) -> dict[str, Any]:
        if title != self.title:
            self.title = title
            self._meta_dirty = True
        return self._result(title=self.title)

    def update_options(self, **changes: Any) -> dict[str, Any]:
        """Change display options; unknown option names raise ValueError."""
        unknown = set(changes) - set(DisplayOptions.model_fields)
        if unknown:
            raise ValueError(f"Unknown display options: {sorted(unknown)}")
        updated = DisplayOptions.model_validate({**self.options.model_dump(), **changes})
        if updated != self.options:
            self.options = updated
            self._meta_dirty = True
        return self._result(options=self.options.model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def _apply_import(self, fmt: str, run) -> dict[str, Any]:
        try:
            result: ImportResult = run()
        except TableError as exc:
            emit_warning(
                EventType.table_import_failed,
                str(exc),
                self._ctx(format=fmt),
                error_code=exc.code,
            )
            raise
        self.grid.replace(result.columns, result.rows)
        message = result.summary()
        emit_info(
            EventType.table_imported,
            message,
            self._ctx(format=fmt, n_columns=len(result.columns), n_rows=len(result.rows)),
        )
        return self._result(message=message)

    def import_csv(self, text: str) -> dict[str, Any]:
        """Replace schema and rows from CSV text.  On error the grid is untouched."""
        return self._apply_import("csv", lambda: import_csv(text))

    def import_html(self, fragment: str) -> dict[str, Any]:
        """Replace schema and rows from an HTML ``<table>`` fragment."""
        return self._apply_import("html", lambda: import_html(fragment))

    def import_xlsx(self, data: bytes, sheet: str | None = None) -> dict[str, Any]:
        """Replace schema and rows from a worksheet of an XLSX workbook."""
        return self._apply_import("xlsx", lambda: import_xlsx(data, sheet))

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(self) -> SaveAck:
        """Persist the current state.

        The dirty flag is cleared only once the store confirmed the write and
        only if nothing changed while the save was in flight.

        Raises:
            SaveInProgress: Another save for this session has not finished.
            PersistenceFailure: The store rejected the write (state stays dirty).
        """
        if not self._save_lock.acquire(blocking=False):
            raise SaveInProgress()
        try:
            snapshot = self.grid.snapshot()
            title, options = self.title, self.options
            try:
                ack = self.store.save(self.table_id, snapshot, options=options, title=title)
            except PersistenceFailure as exc:
                emit_error(
                    EventType.table_save_failed,
                    str(exc),
                    self._ctx(),
                    error_code=exc.code,
                )
                raise
            if self.grid.snapshot() == snapshot:
                self.grid.mark_clean()
            if self.title == title and self.options == options:
                self._meta_dirty = False
            self.last_ack = ack
            emit_info(
                EventType.table_saved,
                f"Saved table {self.table_id!r}",
                self._ctx(content_hash=ack.content_hash, written=ack.written, n_rows=len(snapshot.rows)),
            )
            return ack
        finally:
            self._save_lock.release()

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview_html(self, extra_class: str = "") -> str:
        """Render the unsaved editor state."""
        rendered = render_table(
            self.grid.columns,
            self.grid.rows,
            self.options,
            table_id=self.table_id,
            extra_class=extra_class,
            settings=self.settings,
        )
        return rendered.to_html()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        emit_info(EventType.session_closed, "Editor session closed", self._ctx(dirty=self.dirty))


class TableService:
    """Service wrapping a table store and the open editor sessions.

    Parameters
    ----------
    project_dir : Path | None
        Root of a tablesmith project (tables are stored as YAML files).
    store : TableStore | None
        Explicit store; defaults to a YAML store in *project_dir*, or an
        in-memory store when there is no project dir.
    config : dict | None
        Overrides merged over the project config.
    """

    def __init__(
        self,
        project_dir: Path | None = None,
        store: TableStore | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        self.project_dir = Path(project_dir).resolve() if project_dir is not None else None
        if self.project_dir is not None:
            base = load_project_config(self.project_dir)
        else:
            base = dict(DEFAULT_CONFIG)
        self.config = {**base, **(config or {})}
        if store is None:
            store = YamlTableStore(self.project_dir) if self.project_dir else MemoryTableStore()
        self.store = store
        self.settings = RenderSettings.from_config(self.config)
        self._sessions: dict[str, EditorSession] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def list_tables(self) -> list[dict[str, Any]]:
        return [s.model_dump() for s in self.store.list_tables()]

    def create_table(self, title: str, table_id: str | None = None) -> dict[str, Any]:
        table = self.store.create(title, table_id)
        emit_info(EventType.table_created, f"Created table {table.table_id!r}", {"table_id": table.table_id, "title": table.title})
        return table.model_dump(mode="json")

    def get_table(self, table_id: str) -> dict[str, Any]:
        """Return the open session state, or the stored table when none is open."""
        session = self._sessions.get(table_id)
        if session is not None:
            return session.state()
        table = self.store.load(table_id)
        return {**table.model_dump(mode="json"), "dirty": False, "saving": False, "selected_rows": []}

    def delete_table(self, table_id: str) -> dict[str, Any]:
        self.store.delete(table_id)
        with self._lock:
            session = self._sessions.pop(table_id, None)
        if session is not None:
            session.close()
        emit_info(EventType.table_deleted, f"Deleted table {table_id!r}", {"table_id": table_id})
        return {"ok": True, "table_id": table_id}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def open_session(self, table_id: str) -> EditorSession:
        """Open (or return the already open) editor session for *table_id*.

        Raises:
            NotFound: Unknown table.
        """
        with self._lock:
            session = self._sessions.get(table_id)
            if session is not None:
                return session
            table = self.store.load(table_id)
            session = EditorSession(self.store, table, self.settings)
            self._sessions[table_id] = session
        emit_info(
            EventType.table_loaded,
            f"Loaded table {table_id!r}",
            {"table_id": table_id, "n_columns": len(table.columns), "n_rows": len(table.rows)},
        )
        emit_info(
            EventType.session_opened,
            "Editor session opened",
            {"table_id": table_id, "session_id": session.session_id},
        )
        return session

    def close_session(self, table_id: str) -> dict[str, Any]:
        """Close the session for *table_id*; unsaved changes are discarded."""
        with self._lock:
            session = self._sessions.pop(table_id, None)
        if session is None:
            return {"ok": True, "closed": False}
        discarded = session.dirty
        session.close()
        return {"ok": True, "closed": True, "discarded_changes": discarded}

    def session(self, table_id: str) -> EditorSession:
        return self.open_session(table_id)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, table_id: Any, override_class: str | None = None) -> str:
        """Render directive: markup for the last saved state of *table_id*.

        Unknown or invalid ids render a comment placeholder instead of raising.
        """
        if not is_valid_table_id(table_id):
            return INVALID_ID_MARKER
        try:
            table = self.store.load(table_id)
        except (NotFound, PersistenceFailure):
            return INVALID_ID_MARKER
        rendered = render_table(
            table.columns,
            table.rows,
            table.options,
            table_id=table.table_id,
            extra_class=override_class or "",
            settings=self.settings,
        )
        return rendered.to_html()

    def render_view(self, table_id: str, request: TableViewRequest) -> str:
        """Render a saved table with a sort and search applied server-side."""
        table = self.store.load(table_id)
        rendered = render_table(
            table.columns,
            table.rows,
            table.options,
            table_id=table.table_id,
            extra_class=request.override_class,
            settings=self.settings,
        )
        return apply_view(rendered, request).to_html()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_csv(self, table_id: str, out_path: Path) -> dict[str, Any]:
        """Write the saved table as CSV (labels as headers, raw values)."""
        table = self.store.load(table_id)
        labels = [c.label or c.key for c in table.columns]
        if len(set(labels)) != len(labels):
            labels = [c.key for c in table.columns]
        df = pl.DataFrame(
            {
                name: [row.get(col.key, "") for row in table.rows]
                for name, col in zip(labels, table.columns)
            },
            schema={name: pl.Utf8 for name in labels},
        )
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        df.write_csv(out_path)
        return {"ok": True, "path": str(out_path), "n_rows": df.height, "n_cols": df.width}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def suggest_key(label: str) -> dict[str, str]:
        return {"label": label, "key": suggest_key(label)}

    def tail_events(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        table_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Most-recent-first events from the project log (empty without a sink)."""
        sink = get_sink()
        if sink is None:
            return []
        return sink.read_global(level=level, event_type=event_type, table_id=table_id, limit=limit)
