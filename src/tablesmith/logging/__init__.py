"""Structured event logging for tablesmith.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from tablesmith.logging.events import (
    EventLevel,
    EventType,
    TableEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    redact_context,
    set_project_dir,
)
from tablesmith.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "TableEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "redact_context",
    "set_project_dir",
]
