"""Structured table events and the module-level emit helpers.

Timestamps are UTC ISO-8601 with a ``Z`` suffix.  ``emit()`` and its
level-specific wrappers never raise; write failures are reported on stderr.
"""

from __future__ import annotations

import re
import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Table lifecycle
    table_created = "table_created"
    table_loaded = "table_loaded"
    table_saved = "table_saved"
    table_save_failed = "table_save_failed"
    table_deleted = "table_deleted"

    # Import
    table_imported = "table_imported"
    table_import_failed = "table_import_failed"

    # Editor sessions
    session_opened = "session_opened"
    session_closed = "session_closed"


# ---------------------------------------------------------------------------
# Context redaction
# ---------------------------------------------------------------------------

_SENSITIVE_KEY_RE = re.compile(
    r"(password|passwd|secret|token|api_?key|authorization|cookie|bearer|nonce)",
    re.IGNORECASE,
)

_MAX_VALUE_LEN = 256
_REDACTED = "[REDACTED]"


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a redacted copy of an event context.

    Sensitive keys lose their values.  http(s) URLs lose credentials,
    query string and fragment.  Long strings (imported cell text, pasted
    HTML) are cut to 256 characters.
    """
    return {k: _redact(k, v) for k, v in context.items()}


def _redact(key: str, value: Any) -> Any:
    if _SENSITIVE_KEY_RE.search(str(key)):
        return _REDACTED
    if isinstance(value, dict):
        return redact_context(value)
    if isinstance(value, (list, tuple)):
        return [_redact("", item) for item in value]
    if isinstance(value, str):
        return _shorten(_strip_url(value))
    return value


def _strip_url(value: str) -> str:
    if "://" not in value:
        return value
    try:
        parts = urlsplit(value)
        host = parts.hostname or ""
    except ValueError:
        return value
    if parts.scheme not in ("http", "https"):
        return value
    clean = f"{parts.scheme}://{host}{parts.path}"
    return f"{clean}?{_REDACTED}" if parts.query else clean


def _shorten(value: str) -> str:
    if len(value) <= _MAX_VALUE_LEN:
        return value
    return value[:_MAX_VALUE_LEN] + "...[truncated]"


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class TableEvent(BaseModel):
    """One line of the NDJSON event log."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


def _required_keys(event_type: EventType) -> frozenset[str]:
    """Context keys an event must carry to be attributable."""
    if event_type is EventType.table_import_failed:
        # CLI imports can fail before the target table exists.
        return frozenset()
    if event_type.value.startswith("session_"):
        return frozenset({"table_id", "session_id"})
    return frozenset({"table_id"})


def _validate_attribution(event: TableEvent) -> TableEvent:
    """Downgrade *event* to a warning when attribution keys are missing."""
    missing = _required_keys(event.event_type) - set(event.context)
    if not missing:
        return event
    context = {**event.context, "_missing_attribution": sorted(missing)}
    return event.model_copy(update={"level": EventLevel.warning, "context": context})


# ---------------------------------------------------------------------------
# Module-level sink
# ---------------------------------------------------------------------------

# None until ``set_project_dir`` attaches a project; events are then dropped.
_sink: Any = None  # EventSink | None


def set_project_dir(project_dir: Path | str | None) -> None:
    """Attach the module-level sink to *project_dir* (None detaches it).

    Called by the CLI and at server startup.  ``logging_fsync`` and
    ``logging_tail_bytes`` come from ``tablesmith.yaml``.
    """
    global _sink
    from tablesmith.logging.sink import EventSink
    from tablesmith.project import load_project_config

    if project_dir is None:
        _sink = None
        return

    project_dir = Path(project_dir)
    try:
        cfg = load_project_config(project_dir)
    except (OSError, ValueError, yaml.YAMLError):
        cfg = {}
    tail_bytes = cfg.get("logging_tail_bytes")
    _sink = EventSink(
        project_dir,
        fsync=bool(cfg.get("logging_fsync", False)),
        tail_bytes=int(tail_bytes) if tail_bytes is not None else None,
    )


def get_sink() -> Any:
    """Return the attached sink, or None."""
    return _sink


_last_stderr_ts = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Report a logging failure on stderr at most once a minute."""
    global _last_stderr_ts
    now = time.monotonic()
    if _last_stderr_ts and now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[tablesmith] {msg}", file=sys.stderr)
    except (OSError, ValueError):
        pass


# ---------------------------------------------------------------------------
# Emit helpers
# ---------------------------------------------------------------------------


def emit(event: TableEvent) -> None:
    """Redact, check attribution and write *event*.  **Never raises.**

    The event goes to the global log and, when its context names a table,
    to that table's log.
    """
    sink = _sink
    if sink is None:
        return
    try:
        event = event.model_copy(update={"context": redact_context(event.context)})
        event = _validate_attribution(event)
        sink.write(event, table_id=event.context.get("table_id"))
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def _emit_at(
    level: EventLevel,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None,
    error_code: str | None,
) -> None:
    emit(
        TableEvent(
            level=level,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )


def emit_info(event_type: EventType, message: str, context: dict[str, Any] | None = None) -> None:
    _emit_at(EventLevel.info, event_type, message, context, None)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.warning, event_type, message, context, error_code)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit_at(EventLevel.error, event_type, message, context, error_code)
