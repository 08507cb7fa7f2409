"""CSV and HTML table import.

Both importers are pure: they build a fresh column schema and row set from
raw text and never touch an existing table.  A failed import raises before
anything is produced, so callers keep whatever they had.
"""

from __future__ import annotations

import csv
import sys
from dataclasses import dataclass, field

import lxml.html
from lxml import etree

from tablesmith.errors import EmptyInput, NoHeaderOrData, NoTableFound
from tablesmith.keys import derive_keys
from tablesmith.models import Align, Column, ColumnType, Row

# Cells can exceed the csv module's default 128 KB field limit.
csv.field_size_limit(min(sys.maxsize, 2**31 - 1))


@dataclass
class ImportResult:
    """Schema and rows produced by an importer."""

    columns: list[Column] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)

    def summary(self) -> str:
        return f"Imported {len(self.columns)} columns and {len(self.rows)} rows"


def build_columns(labels: list[str]) -> list[Column]:
    """Build default-typed columns from header labels (trimmed)."""
    labels = [label.strip() for label in labels]
    keys = derive_keys(labels)
    return [
        Column(key=key, label=label, type=ColumnType.text, align=Align.left, width="")
        for key, label in zip(keys, labels)
    ]


def align_row(columns: list[Column], values: list[str]) -> Row:
    """Map positional *values* onto *columns*; short rows pad with ``""``."""
    return {
        col.key: values[idx].strip() if idx < len(values) else ""
        for idx, col in enumerate(columns)
    }


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _parse_csv_line(line: str) -> list[str]:
    """Parse one line as CSV fields (double-quote quoting)."""
    for fields in csv.reader([line]):
        return fields
    return []


def import_csv(text: str) -> ImportResult:
    """Parse CSV text into a column schema and rows.

    Lines are split on any line ending and blank lines are dropped before
    parsing, so quoted fields cannot span lines.  The first line is the
    header.  Data rows shorter than the header are padded with empty
    strings; extra fields are ignored.

    Args:
        text: Raw CSV text, possibly empty.

    Returns:
        ImportResult with one column per header field and one row per data line.

    Raises:
        EmptyInput: Fewer than two non-blank lines.
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if len(lines) < 2:
        raise EmptyInput()

    columns = build_columns(_parse_csv_line(lines[0]))
    rows = [align_row(columns, _parse_csv_line(line)) for line in lines[1:]]
    return ImportResult(columns=columns, rows=rows)


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


def _cell_texts(cells) -> list[str]:
    return [cell.text_content().strip() for cell in cells]


def import_html(fragment: str) -> ImportResult:
    """Parse the first ``<table>`` of an HTML fragment.

    Header row precedence:

    1. ``<th>`` cells inside the table's first ``<thead>``;
    2. otherwise the first ``<tr>`` (document order) containing ``<th>``
       cells, which is then excluded from the data rows.

    Every other ``<tr>`` with at least one ``<td>`` becomes a data row.  Cell
    values are the trimmed text content; inner markup is discarded.

    Raises:
        NoTableFound: No ``<table>`` element (or nothing parseable).
        NoHeaderOrData: No header row, or zero data rows.
    """
    if not fragment or not fragment.strip():
        raise NoTableFound()
    try:
        doc = lxml.html.document_fromstring(fragment)
    except (etree.ParserError, ValueError) as exc:
        raise NoTableFound(f"No table found in HTML ({exc})") from exc

    table = next(doc.iter("table"), None)
    if table is None:
        raise NoTableFound()

    header: list[str] | None = None
    thead = next(table.iter("thead"), None)
    if thead is not None:
        ths = list(thead.iter("th"))
        if ths:
            header = _cell_texts(ths)

    data_rows: list[list[str]] = []
    for tr in table.iter("tr"):
        ths = list(tr.iter("th"))
        if ths and header is None:
            header = _cell_texts(ths)
            continue
        tds = list(tr.iter("td"))
        if tds:
            data_rows.append(_cell_texts(tds))

    if not header or not data_rows:
        raise NoHeaderOrData()

    columns = build_columns(header)
    rows = [align_row(columns, values) for values in data_rows]
    return ImportResult(columns=columns, rows=rows)
