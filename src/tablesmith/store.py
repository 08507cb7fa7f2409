"""Persistence adapters: save and load table definitions by id.

A store is an opaque key-value service keyed by table id.  ``load`` returns
exactly the last saved state; ``save`` is idempotent (identical content is
detected by hash and not rewritten).

Two adapters are provided:

- :class:`YamlTableStore` -- one ``tables/<table_id>.yaml`` file per table
  inside a project directory, written atomically.
- :class:`MemoryTableStore` -- dict-backed, for tests and embedding.
"""

from __future__ import annotations

import copy
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import BaseModel, ValidationError

from tablesmith.errors import NotFound, PersistenceFailure
from tablesmith.keys import slugify
from tablesmith.models import DisplayOptions, TableDefinition, TableSnapshot
from tablesmith.utils.hash import table_content_hash

_TABLE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


def is_valid_table_id(table_id: Any) -> bool:
    """Return True if *table_id* is usable as a store key (and file name)."""
    return isinstance(table_id, str) and bool(_TABLE_ID_RE.match(table_id))


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class SaveAck:
    """Confirmation of a save.

    Attributes:
        table_id: Saved table.
        content_hash: SHA-256 of the persisted content.
        written: False when the content was identical and nothing was rewritten.
        saved_at: UTC timestamp of the acknowledgement.
    """

    table_id: str
    content_hash: str
    written: bool
    saved_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_id": self.table_id,
            "content_hash": self.content_hash,
            "written": self.written,
            "saved_at": self.saved_at,
        }


class TableSummary(BaseModel):
    table_id: str
    title: str = ""
    n_columns: int = 0
    n_rows: int = 0


class TableStore(Protocol):
    """Interface every persistence adapter implements."""

    def load(self, table_id: str) -> TableDefinition: ...

    def save(
        self,
        table_id: str,
        snapshot: TableSnapshot,
        options: DisplayOptions | None = None,
        title: str | None = None,
    ) -> SaveAck: ...

    def save_options(self, table_id: str, options: DisplayOptions) -> SaveAck: ...

    def exists(self, table_id: str) -> bool: ...

    def list_tables(self) -> list[TableSummary]: ...

    def create(self, title: str, table_id: str | None = None) -> TableDefinition: ...

    def delete(self, table_id: str) -> None: ...


class BaseTableStore:
    """Shared save/load logic over four storage primitives.

    Subclasses implement ``_read``, ``_write``, ``_remove`` and ``_ids``.
    """

    # -- primitives --

    def _read(self, table_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def _write(self, table_id: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    def _remove(self, table_id: str) -> bool:
        raise NotImplementedError

    def _ids(self) -> list[str]:
        raise NotImplementedError

    # -- public API --

    def exists(self, table_id: str) -> bool:
        return is_valid_table_id(table_id) and table_id in self._ids()

    def load(self, table_id: str) -> TableDefinition:
        """Load a table definition.

        Raises:
            NotFound: Unknown or invalid id.
            PersistenceFailure: Stored content is unreadable.
        """
        if not is_valid_table_id(table_id):
            raise NotFound(str(table_id))
        payload = self._read(table_id)
        if payload is None:
            raise NotFound(table_id)
        try:
            return TableDefinition.model_validate({**payload, "table_id": table_id})
        except ValidationError as exc:
            raise PersistenceFailure(f"stored table {table_id!r} is malformed: {exc}") from exc

    def save(
        self,
        table_id: str,
        snapshot: TableSnapshot,
        options: DisplayOptions | None = None,
        title: str | None = None,
    ) -> SaveAck:
        """Persist a snapshot.  Title and options default to the stored ones.

        Raises:
            PersistenceFailure: Invalid id or the write was rejected.
        """
        if not is_valid_table_id(table_id):
            raise PersistenceFailure(f"invalid table id {table_id!r}")
        existing = self._read(table_id)
        if existing is None:
            existing = {}
        if options is None:
            options = DisplayOptions.model_validate(existing.get("options") or {})
        if title is None:
            title = str(existing.get("title") or "")

        data = snapshot.to_dict()
        payload = {
            "table_id": table_id,
            "title": title,
            "columns": data["columns"],
            "rows": data["rows"],
            "options": options.model_dump(mode="json"),
        }
        return self._commit(table_id, payload, existing)

    def save_options(self, table_id: str, options: DisplayOptions) -> SaveAck:
        """Persist display options only, leaving schema and rows untouched.

        Raises:
            NotFound: Unknown table.
        """
        table = self.load(table_id)
        payload = table.model_dump(mode="json")
        payload["options"] = options.model_dump(mode="json")
        return self._commit(table_id, payload, self._read(table_id) or {})

    def _commit(self, table_id: str, payload: dict[str, Any], existing: dict[str, Any]) -> SaveAck:
        new_hash = table_content_hash(payload)
        if existing and table_content_hash(existing) == new_hash:
            return SaveAck(table_id, new_hash, written=False, saved_at=_utc_now())
        try:
            self._write(table_id, payload)
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceFailure(str(exc)) from exc
        return SaveAck(table_id, new_hash, written=True, saved_at=_utc_now())

    def list_tables(self) -> list[TableSummary]:
        """Summaries of all stored tables, sorted by id.  Unreadable entries are skipped."""
        out = []
        for table_id in sorted(self._ids()):
            try:
                table = self.load(table_id)
            except (NotFound, PersistenceFailure):
                continue
            out.append(
                TableSummary(
                    table_id=table_id,
                    title=table.title,
                    n_columns=len(table.columns),
                    n_rows=len(table.rows),
                )
            )
        return out

    def create(self, title: str, table_id: str | None = None) -> TableDefinition:
        """Create an empty table.

        The id defaults to a slug of *title*, suffixed ``-2``, ``-3``... when
        taken.

        Raises:
            PersistenceFailure: Explicit *table_id* is invalid or already taken.
        """
        title = (title or "").strip()
        if table_id is not None:
            if not is_valid_table_id(table_id):
                raise PersistenceFailure(f"invalid table id {table_id!r}")
            if self.exists(table_id):
                raise PersistenceFailure(f"table {table_id!r} already exists")
        else:
            base = slugify(title, separator="-") or "table"
            taken = set(self._ids())
            table_id = base
            n = 2
            while table_id in taken:
                table_id = f"{base}-{n}"
                n += 1
        table = TableDefinition(table_id=table_id, title=title)
        self._commit(table_id, table.model_dump(mode="json"), {})
        return table

    def delete(self, table_id: str) -> None:
        """Delete a table.

        Raises:
            NotFound: Unknown table.
        """
        if not is_valid_table_id(table_id) or not self._remove(table_id):
            raise NotFound(str(table_id))


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class MemoryTableStore(BaseTableStore):
    """In-process store; payloads are deep-copied in and out."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Any]] = {}

    def _read(self, table_id: str) -> dict[str, Any] | None:
        payload = self._tables.get(table_id)
        return copy.deepcopy(payload) if payload is not None else None

    def _write(self, table_id: str, payload: dict[str, Any]) -> None:
        self._tables[table_id] = copy.deepcopy(payload)

    def _remove(self, table_id: str) -> bool:
        return self._tables.pop(table_id, None) is not None

    def _ids(self) -> list[str]:
        return list(self._tables)


class YamlTableStore(BaseTableStore):
    """Stores each table as ``<project_dir>/tables/<table_id>.yaml``.

    Args:
        project_dir: Project root (the ``tables/`` directory is created on demand).
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = Path(project_dir)
        self.tables_dir = self.project_dir / "tables"

    def path_for(self, table_id: str) -> Path:
        return self.tables_dir / f"{table_id}.yaml"

    def _read(self, table_id: str) -> dict[str, Any] | None:
        path = self.path_for(table_id)
        if not path.exists():
            return None
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceFailure(f"cannot read {path.name}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise PersistenceFailure(f"{path.name} must contain a mapping")
        return data

    def _write(self, table_id: str, payload: dict[str, Any]) -> None:
        """Atomic write: tmp file then os.replace."""
        self.tables_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(table_id)
        tmp_path = path.with_suffix(".yaml.tmp")
        tmp_path.write_text(
            yaml.safe_dump(payload, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
        os.replace(str(tmp_path), str(path))

    def _remove(self, table_id: str) -> bool:
        path = self.path_for(table_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _ids(self) -> list[str]:
        if not self.tables_dir.is_dir():
            return []
        return [
            p.stem for p in self.tables_dir.glob("*.yaml")
            if p.is_file() and is_valid_table_id(p.stem)
        ]
