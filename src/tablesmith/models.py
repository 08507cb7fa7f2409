"""Table data model: column schema, rows, display options, snapshots.

Rows are plain ``dict[str, str]`` mappings from column key to raw value.
Formatted values are never stored; formatting happens at render time.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

Row = dict[str, str]


class ColumnType(str, Enum):
    text = "text"
    number = "number"
    currency = "currency"
    percent = "percent"
    link = "link"
    image = "image"
    html = "html"


class Align(str, Enum):
    left = "left"
    center = "center"
    right = "right"


class Column(BaseModel):
    """A single column definition.  Column order is display order."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str = ""
    type: ColumnType = ColumnType.text
    align: Align = Align.left
    width: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Any:
        # Stored tables may carry types this version does not know.
        if isinstance(v, ColumnType):
            return v
        try:
            return ColumnType(str(v))
        except ValueError:
            return ColumnType.text

    @field_validator("align", mode="before")
    @classmethod
    def _coerce_align(cls, v: Any) -> Any:
        if isinstance(v, Align):
            return v
        try:
            return Align(str(v))
        except ValueError:
            return Align.left

    @field_validator("width", "label", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class DisplayOptions(BaseModel):
    """Presentation flags.  Every combination is valid for rendering."""

    has_header: bool = True
    striped: bool = True
    hover: bool = True
    responsive: bool = True
    sortable: bool = False
    searchable: bool = False
    custom_class: str = ""


class TableDefinition(BaseModel):
    """A persisted table as returned by a store."""

    table_id: str
    title: str = ""
    columns: list[Column] = Field(default_factory=list)
    rows: list[Row] = Field(default_factory=list)
    options: DisplayOptions = Field(default_factory=DisplayOptions)

    @field_validator("rows", mode="before")
    @classmethod
    def _stringify_rows(cls, v: Any) -> Any:
        # YAML round-trips may turn "30" into 30; rows hold raw strings.
        if not isinstance(v, list):
            return v
        out = []
        for row in v:
            if isinstance(row, dict):
                out.append({str(k): "" if val is None else str(val) for k, val in row.items()})
            else:
                out.append(row)
        return out


@dataclass(frozen=True)
class TableSnapshot:
    """Immutable copy of grid state handed to a store on save."""

    columns: tuple[Column, ...] = ()
    rows: tuple[Mapping[str, str], ...] = field(default_factory=tuple)

    @classmethod
    def capture(cls, columns: list[Column], rows: list[Row]) -> TableSnapshot:
        """Deep-copy *columns* and *rows* into a read-only snapshot."""
        return cls(
            columns=tuple(columns),
            rows=tuple(MappingProxyType(copy.deepcopy(r)) for r in rows),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a plain JSON/YAML-serializable representation."""
        return {
            "columns": [c.model_dump(mode="json") for c in self.columns],
            "rows": [dict(r) for r in self.rows],
        }
