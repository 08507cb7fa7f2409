"""FastAPI server for the tablesmith editor API and render directive.

Routes are thin wrappers over the shared :class:`TableService`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from tablesmith.errors import TableError
from tablesmith.logging.events import set_project_dir
from tablesmith.models import Align, ColumnType
from tablesmith.ui.service import TableService
from tablesmith.ui.view_transforms import TableViewRequest

# The singleton service is set at startup by ``create_app()``.
_service: TableService | None = None

_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_STATUS_BY_CODE = {
    "not_found": 404,
    "duplicate_key": 409,
    "save_in_progress": 409,
}


def create_app(project_dir: Path | None = None, service: TableService | None = None) -> FastAPI:
    """Create the FastAPI application for a given project.

    Args:
        project_dir: Root of the tablesmith project.
        service: Pre-built service (tests); takes precedence over *project_dir*.

    Returns:
        Configured FastAPI instance.
    """
    global _service
    if service is None:
        if project_dir is None:
            raise ValueError("project_dir or service is required")
        set_project_dir(project_dir)
        service = TableService(project_dir=project_dir)
    _service = service

    from tablesmith import __version__

    app = FastAPI(title="tablesmith", version=__version__)
    app.include_router(_api_router())

    @app.get("/tables/{table_id}/render", response_class=HTMLResponse)
    async def render_table_directive(
        table_id: str,
        override_class: str | None = Query(None, alias="class"),
    ) -> str:
        return _svc().render(table_id, override_class)

    return app


def _svc() -> TableService:
    """Get the singleton service, raising if not initialised."""
    if _service is None:
        raise HTTPException(500, "Service not initialised")
    return _service


def _http_error(exc: TableError) -> HTTPException:
    return HTTPException(_STATUS_BY_CODE.get(exc.code, 400), str(exc))


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CreateTableRequest(BaseModel):
    title: str = ""
    table_id: str | None = None


class TitleRequest(BaseModel):
    title: str


class OptionsRequest(BaseModel):
    has_header: bool | None = None
    striped: bool | None = None
    hover: bool | None = None
    responsive: bool | None = None
    sortable: bool | None = None
    searchable: bool | None = None
    custom_class: str | None = None


class CellEdit(BaseModel):
    row: int
    key: str
    value: str = ""


class CellUpdateRequest(BaseModel):
    edits: list[CellEdit]


class RowIndexRequest(BaseModel):
    index: int


class RowDeleteRequest(BaseModel):
    indices: list[int] = Field(default_factory=list)
    selected: bool = False


class RowSelectRequest(BaseModel):
    indices: list[int] = Field(default_factory=list)
    selected: bool = True
    all: bool = False


class NavigateRequest(BaseModel):
    row: int
    col: int
    key: str
    shift: bool = False


class ColumnRequest(BaseModel):
    key: str
    label: str = ""
    type: ColumnType = ColumnType.text
    align: Align = Align.left
    width: str = ""
    index: int | None = None


class ColumnUpdateRequest(BaseModel):
    label: str | None = None
    type: ColumnType | None = None
    align: Align | None = None
    width: str | None = None


class TextImportRequest(BaseModel):
    text: str


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


def _api_router():
    from fastapi import APIRouter

    router = APIRouter(prefix="/api")

    # -- Health --

    @router.get("/health")
    async def health() -> dict[str, Any]:
        from tablesmith import __version__

        return {"ok": True, "version": __version__}

    # -- Tables --

    @router.get("/tables")
    async def list_tables() -> list[dict[str, Any]]:
        return _svc().list_tables()

    @router.post("/tables")
    async def create_table(req: CreateTableRequest) -> dict[str, Any]:
        try:
            return _svc().create_table(req.title, req.table_id)
        except TableError as exc:
            raise _http_error(exc)

    @router.get("/tables/{table_id}")
    async def get_table(table_id: str) -> dict[str, Any]:
        try:
            return _svc().get_table(table_id)
        except TableError as exc:
            raise _http_error(exc)

    @router.delete("/tables/{table_id}")
    async def delete_table(table_id: str) -> dict[str, Any]:
        try:
            return _svc().delete_table(table_id)
        except TableError as exc:
            raise _http_error(exc)

    @router.patch("/tables/{table_id}")
    async def set_title(table_id: str, req: TitleRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).set_title(req.title)
        except TableError as exc:
            raise _http_error(exc)

    @router.patch("/tables/{table_id}/options")
    async def update_options(table_id: str, req: OptionsRequest) -> dict[str, Any]:
        changes = req.model_dump(exclude_none=True)
        try:
            return _svc().session(table_id).update_options(**changes)
        except TableError as exc:
            raise _http_error(exc)

    # -- Session --

    @router.delete("/tables/{table_id}/session")
    async def close_session(table_id: str) -> dict[str, Any]:
        return _svc().close_session(table_id)

    @router.post("/tables/{table_id}/save")
    async def save(table_id: str) -> dict[str, Any]:
        try:
            ack = _svc().session(table_id).save()
        except TableError as exc:
            raise _http_error(exc)
        return {"ok": True, "dirty": _svc().session(table_id).dirty, **ack.to_dict()}

    @router.get("/tables/{table_id}/preview", response_class=HTMLResponse)
    async def preview(table_id: str) -> str:
        try:
            return _svc().session(table_id).preview_html()
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/view")
    async def view(table_id: str, req: TableViewRequest) -> dict[str, Any]:
        try:
            return {"html": _svc().render_view(table_id, req)}
        except TableError as exc:
            raise _http_error(exc)

    # -- Cells / rows --

    @router.post("/tables/{table_id}/cells")
    async def update_cells(table_id: str, req: CellUpdateRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).set_cells([e.model_dump() for e in req.edits])
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/rows/add")
    async def add_row(table_id: str) -> dict[str, Any]:
        try:
            return _svc().session(table_id).add_row()
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/rows/insert")
    async def insert_row(table_id: str, req: RowIndexRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).insert_row(req.index)
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/rows/duplicate")
    async def duplicate_row(table_id: str, req: RowIndexRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).duplicate_row(req.index)
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/rows/delete")
    async def delete_rows(table_id: str, req: RowDeleteRequest) -> dict[str, Any]:
        try:
            session = _svc().session(table_id)
            if req.selected:
                return session.delete_selected()
            return session.delete_rows(req.indices)
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/rows/select")
    async def select_rows(table_id: str, req: RowSelectRequest) -> dict[str, Any]:
        try:
            session = _svc().session(table_id)
            if req.all:
                return session.select_all(req.selected)
            return session.select_rows(req.indices, req.selected)
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/navigate")
    async def navigate(table_id: str, req: NavigateRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).navigate(req.row, req.col, req.key, req.shift)
        except TableError as exc:
            raise _http_error(exc)

    # -- Columns --

    @router.post("/tables/{table_id}/columns")
    async def add_column(table_id: str, req: ColumnRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).add_column(
                req.key, req.label, req.type, req.align, req.width, index=req.index
            )
        except TableError as exc:
            raise _http_error(exc)

    @router.patch("/tables/{table_id}/columns/{key}")
    async def update_column(table_id: str, key: str, req: ColumnUpdateRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).update_column(key, **req.model_dump(exclude_none=True))
        except TableError as exc:
            raise _http_error(exc)

    @router.delete("/tables/{table_id}/columns/{key}")
    async def delete_column(table_id: str, key: str) -> dict[str, Any]:
        try:
            return _svc().session(table_id).delete_column(key)
        except TableError as exc:
            raise _http_error(exc)

    @router.get("/suggest-key")
    async def suggest_key(label: str = Query("")) -> dict[str, str]:
        return _svc().suggest_key(label)

    # -- Import --

    @router.post("/tables/{table_id}/import/csv")
    async def import_csv(table_id: str, req: TextImportRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).import_csv(req.text)
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/import/html")
    async def import_html(table_id: str, req: TextImportRequest) -> dict[str, Any]:
        try:
            return _svc().session(table_id).import_html(req.text)
        except TableError as exc:
            raise _http_error(exc)

    @router.post("/tables/{table_id}/import/xlsx")
    async def import_xlsx(
        table_id: str,
        file: UploadFile = File(...),
        sheet: str | None = Form(None),
    ) -> dict[str, Any]:
        fname = file.filename or ""
        if not fname.lower().endswith(".xlsx"):
            raise HTTPException(400, "Only .xlsx files are accepted")

        data = await file.read()
        if len(data) == 0:
            raise HTTPException(400, "Uploaded file is empty")
        if len(data) > _MAX_UPLOAD_BYTES:
            raise HTTPException(400, f"File too large (max {_MAX_UPLOAD_BYTES // (1024*1024)} MB)")

        try:
            return _svc().session(table_id).import_xlsx(data, sheet or None)
        except TableError as exc:
            raise _http_error(exc)

    # -- Event logs --

    @router.get("/events")
    async def get_events(
        level: str | None = Query(None),
        event_type: str | None = Query(None),
        table_id: str | None = Query(None),
        limit: int = Query(200, ge=1, le=2000),
    ) -> list[dict[str, Any]]:
        return _svc().tail_events(
            level=level, event_type=event_type, table_id=table_id, limit=limit
        )

    return router
