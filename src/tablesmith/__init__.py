"""tablesmith -- editable data tables with CSV/HTML import and styled rendering."""

__version__ = "0.1.0"
