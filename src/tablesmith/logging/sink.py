"""NDJSON event sink: one JSON object per line, appended under a file lock.

Layout inside a project::

    logs/events.ndjson              every event
    logs/tables/<table_id>.ndjson   events attributed to one table

Lines are serialized with ``sort_keys=True``.  Appends take an exclusive
``fcntl.flock`` and reads a shared one; where ``fcntl`` is unavailable the
locks are skipped.  Reads only look at the tail of a file so a long-lived
project log never has to be loaded whole.
"""

from __future__ import annotations

import json
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from tablesmith.logging.events import TableEvent

try:
    import fcntl
except ImportError:  # Windows
    fcntl = None  # type: ignore[assignment]

# Table ids become file names; anything else is not written per-table.
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024
_MAX_READ_LIMIT = 2000


@contextmanager
def _locked(fd: int, exclusive: bool) -> Iterator[int]:
    if fcntl is None:
        yield fd
        return
    fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    try:
        yield fd
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)


class EventSink:
    """Append-only writer and tail reader for a project's event logs.

    Args:
        project_dir: Project root; ``logs/`` is created beneath it.
        fsync: fsync after every append.
        tail_bytes: How much of a log file reads look at (default 2 MB).
    """

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self.tables_dir = self.logs_dir / "tables"
        self._fsync = fsync
        self._tail_bytes = tail_bytes or _DEFAULT_TAIL_BYTES
        self.tables_dir.mkdir(parents=True, exist_ok=True)

    @property
    def global_path(self) -> Path:
        return self.logs_dir / "events.ndjson"

    def table_path(self, table_id: str) -> Path | None:
        """Per-table log path, or None when *table_id* is not file-name safe."""
        if not table_id or not _SAFE_ID_RE.match(table_id):
            return None
        return self.tables_dir / f"{table_id}.ndjson"

    def write(self, event: TableEvent, *, table_id: str | None = None) -> None:
        """Append *event* to the global log and, if given, the table's log."""
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n"
        data = line.encode("utf-8")
        self._append(self.global_path, data)
        path = self.table_path(table_id) if table_id else None
        if path is not None:
            self._append(path, data)

    # ------------------------------------------------------------------
    # Queries (CLI ``events`` / ``table-log``, ``GET /api/events``)
    # ------------------------------------------------------------------

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        table_id: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Filtered events from the global log, most recent first."""
        matches = []
        for evt in reversed(self._read_ndjson(self.global_path)):
            if level and evt.get("level") != level:
                continue
            if event_type and evt.get("event_type") != event_type:
                continue
            if table_id and (evt.get("context") or {}).get("table_id") != table_id:
                continue
            matches.append(evt)
            if len(matches) >= min(limit, _MAX_READ_LIMIT):
                break
        return matches

    def read_table_log(self, table_id: str) -> list[dict[str, Any]]:
        """All (tail-bounded) events of one table, oldest first."""
        path = self.table_path(table_id)
        if path is None:
            return []
        return self._read_ndjson(path)

    # ------------------------------------------------------------------
    # File access
    # ------------------------------------------------------------------

    def _append(self, path: Path, data: bytes) -> None:
        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
        try:
            with _locked(fd, exclusive=True):
                os.write(fd, data)
                if self._fsync:
                    os.fsync(fd)
        finally:
            os.close(fd)

    def _read_ndjson(self, path: Path) -> list[dict[str, Any]]:
        """Parse the tail of *path*; malformed lines are skipped."""
        if not path.exists():
            return []
        events = []
        for line in self._read_tail(path).splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                evt = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(evt, dict):
                events.append(evt)
        return events

    def _read_tail(self, path: Path) -> str:
        fd = os.open(str(path), os.O_RDONLY)
        try:
            with _locked(fd, exclusive=False):
                size = os.fstat(fd).st_size
                start = max(0, size - self._tail_bytes)
                os.lseek(fd, start, os.SEEK_SET)
                data = os.read(fd, size - start)
        finally:
            os.close(fd)
        if start > 0:
            # first line is most likely cut
            data = data.partition(b"\n")[2]
        return data.decode("utf-8", errors="replace")
