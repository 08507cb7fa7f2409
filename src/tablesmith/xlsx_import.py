"""XLSX import: read one worksheet of an Excel workbook as a table.

Uses openpyxl in read-only mode with cached formula values.  The first
non-empty row is the header; every following non-empty row is a data row.
Column keys are built exactly as for CSV import.
"""

from __future__ import annotations

import io
import zipfile
from datetime import date, datetime, time
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from tablesmith.errors import EmptyInput, NotAWorkbook
from tablesmith.importers import ImportResult, align_row, build_columns


def cell_to_text(value: Any) -> str:
    """Stringify a cell value the way it reads in the spreadsheet.

    Integral floats lose their ``.0``, booleans become ``TRUE``/``FALSE``,
    dates and times use ISO format (midnight datetimes print as dates).
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def import_xlsx(data: bytes, sheet: str | None = None) -> ImportResult:
    """Parse a worksheet of an XLSX workbook into a column schema and rows.

    Args:
        data: Raw workbook bytes.
        sheet: Worksheet title; the first worksheet when None.

    Returns:
        ImportResult with one column per (non-empty, leading) header cell.

    Raises:
        NotAWorkbook: The bytes are not a readable workbook, or *sheet* is missing.
        EmptyInput: Fewer than two non-empty rows.
    """
    if not data:
        raise EmptyInput("Workbook must have a header row and at least one data row")
    try:
        wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise NotAWorkbook(f"Could not read workbook: {exc}") from exc

    try:
        if sheet is not None:
            if sheet not in wb.sheetnames:
                raise NotAWorkbook(f"Worksheet {sheet!r} not found")
            ws = wb[sheet]
        else:
            if not wb.worksheets:
                raise NotAWorkbook("Workbook has no worksheets")
            ws = wb.worksheets[0]

        lines: list[list[str]] = []
        for raw in ws.iter_rows(values_only=True):
            values = [cell_to_text(v) for v in raw]
            if any(v.strip() for v in values):
                lines.append(values)
    finally:
        wb.close()

    if len(lines) < 2:
        raise EmptyInput("Workbook must have a header row and at least one data row")

    header = lines[0]
    while header and not header[-1].strip():
        header = header[:-1]

    columns = build_columns(header)
    rows = [align_row(columns, values) for values in lines[1:]]
    return ImportResult(columns=columns, rows=rows)
