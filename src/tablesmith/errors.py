"""Error types for table import, grid editing, and persistence.

Every error is raised before any state is touched, so callers can report it
and carry on with the previous table intact.
"""

from __future__ import annotations


class TableError(Exception):
    """Base class for all table-related errors.

    Attributes:
        code: Stable machine-readable error code.
    """

    code = "table_error"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class TableImportError(TableError):
    """Base class for import failures."""

    code = "import_error"


class EmptyInput(TableImportError):
    """Import input had fewer than two usable lines (header + one data row)."""

    code = "empty_input"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or "CSV must have at least a header row and one data row"
        )


class NoTableFound(TableImportError):
    """HTML import input contains no ``<table>`` element."""

    code = "no_table_found"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "No table found in HTML")


class NoHeaderOrData(TableImportError):
    """HTML table has no header row or no data rows."""

    code = "no_header_or_data"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "Could not parse table structure")


class NotAWorkbook(TableImportError):
    """Uploaded bytes could not be read as an XLSX workbook."""

    code = "not_a_workbook"


# ---------------------------------------------------------------------------
# Grid mutation
# ---------------------------------------------------------------------------


class DuplicateKey(TableError):
    """A column with the same key already exists in the schema.

    Attributes:
        key: The colliding column key.
    """

    code = "duplicate_key"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Column key already exists: {key!r}")


class InvalidColumn(TableError):
    """Column definition is unusable (e.g. empty key)."""

    code = "invalid_column"


class UnknownColumn(TableError):
    """Reference to a column key that is not in the schema."""

    code = "unknown_column"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Unknown column: {key!r}")


class NoColumns(TableError):
    """Row add attempted before any column exists."""

    code = "no_columns"

    def __init__(self) -> None:
        super().__init__("Please define columns before adding rows")


class RowOutOfRange(TableError):
    """Row index outside the current row sequence."""

    code = "row_out_of_range"

    def __init__(self, index: int, n_rows: int) -> None:
        self.index = index
        self.n_rows = n_rows
        super().__init__(f"Row index {index} out of range [0, {n_rows})")


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class NotFound(TableError):
    """Persistence lookup miss."""

    code = "not_found"

    def __init__(self, table_id: str) -> None:
        self.table_id = table_id
        super().__init__(f"Table {table_id!r} not found")


class PersistenceFailure(TableError):
    """Persistence write rejected.

    Attributes:
        reason: Human-readable reason reported by the store.
    """

    code = "persistence_failure"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Save failed: {reason}")


class SaveInProgress(TableError):
    """A save for this session is already in flight."""

    code = "save_in_progress"

    def __init__(self) -> None:
        super().__init__("A save is already in progress for this table")
