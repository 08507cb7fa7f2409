"""Live sort/search over a rendered table.

Works only on the rendered row structure (visible cell text), never on raw
stored values, so a number stored in a ``text`` column sorts the same way it
displays.  The rendered table itself is never mutated: a :class:`TableView`
keeps its own row order, hidden set, and sort state.
"""

from __future__ import annotations

import locale
import math
import time
import unicodedata
from functools import cmp_to_key
from typing import Callable, Literal, Sequence

import polars as pl
from pydantic import BaseModel

from tablesmith.render import RenderedRow, RenderedTable, render_markup

SortState = Literal["none", "asc", "desc"]

# Symbols stripped before the numeric test (display formats only).
_NUMERIC_NOISE = r"[$€£¥,\s%]"


# ────────────────────────────────────────────────────────────────
# Request model
# ────────────────────────────────────────────────────────────────


class TableViewRequest(BaseModel):
    sort_column: int | None = None
    descending: bool = False
    query: str = ""
    override_class: str = ""


# ────────────────────────────────────────────────────────────────
# Pure helpers
# ────────────────────────────────────────────────────────────────


def numeric_keys(texts: Sequence[str]) -> list[float | None]:
    """Parse each text as a number after stripping currency/grouping/percent noise.

    Returns None for texts that do not parse to a finite number.
    """
    if not texts:
        return []
    parsed = (
        pl.Series("text", list(texts), dtype=pl.Utf8)
        .str.replace_all(_NUMERIC_NOISE, "")
        .cast(pl.Float64, strict=False)
        .to_list()
    )
    return [v if v is not None and math.isfinite(v) else None for v in parsed]


def _collation_key(text: str) -> tuple[str, str]:
    """Accent- and case-folded text, then the locale transform as a tie-break."""
    folded = unicodedata.normalize("NFKD", text)
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return folded.casefold(), locale.strxfrm(text.lower())


def _compare(a: tuple[float | None, tuple[str, str]], b: tuple[float | None, tuple[str, str]]) -> int:
    a_num, a_text = a
    b_num, b_text = b
    if a_num is not None and b_num is not None:
        return (a_num > b_num) - (a_num < b_num)
    return (a_text > b_text) - (a_text < b_text)


def sort_rows(
    rows: Sequence[RenderedRow],
    col_index: int,
    descending: bool = False,
) -> list[RenderedRow]:
    """Return *rows* sorted by the visible text of column *col_index*.

    Both cells numeric (after stripping ``$€£¥``, ``,``, whitespace, ``%``):
    numeric comparison.  Otherwise text comparison that ignores case and
    accents (``éclair`` sorts between ``apple`` and ``zebra``), with the
    locale collation breaking ties.  Stable in both directions: ties keep
    their current order.
    """
    texts = [r.cells[col_index].text if col_index < len(r.cells) else "" for r in rows]
    nums = numeric_keys(texts)
    keys = [(n, _collation_key(t)) for n, t in zip(nums, texts)]
    order = sorted(
        range(len(rows)),
        key=cmp_to_key(lambda i, j: _compare(keys[i], keys[j])),
        reverse=descending,
    )
    return [rows[i] for i in order]


def match_mask(texts: Sequence[str], query: str) -> list[bool]:
    """Return, per text, whether every whitespace-separated query term occurs in it.

    Matching is case-insensitive substring search; an empty query matches all.
    """
    terms = [t for t in query.lower().split() if t]
    if not texts:
        return []
    if not terms:
        return [True] * len(texts)
    lowered = pl.Series("text", list(texts), dtype=pl.Utf8).str.to_lowercase()
    mask = pl.Series("mask", [True] * len(texts), dtype=pl.Boolean)
    for term in terms:
        mask = mask & lowered.str.contains(term, literal=True)
    return mask.to_list()


# ────────────────────────────────────────────────────────────────
# Stateful view
# ────────────────────────────────────────────────────────────────


class TableView:
    """Interaction state for one rendered table.

    Args:
        table: The rendered table to manipulate.
        debounce_secs: Delay between the last search input and the filter pass
            (defaults to the table's ``search_debounce_ms`` setting).
        clock: Monotonic clock used for debouncing.
    """

    def __init__(
        self,
        table: RenderedTable,
        *,
        debounce_secs: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.table = table
        if debounce_secs is None:
            debounce_secs = table.settings.search_debounce_ms / 1000.0
        self.debounce_secs = debounce_secs
        self._clock = clock
        self._order: list[RenderedRow] = list(table.rows)
        self._hidden: set[int] = set()
        self.sort_column: int | None = None
        self.sort_direction: SortState = "none"
        self.query = ""
        self.no_results: str | None = None
        self._pending_query: str | None = None
        self._deadline = 0.0

    # -- Read access --

    @property
    def rows(self) -> list[RenderedRow]:
        """All rows in current display order (hidden ones included)."""
        return list(self._order)

    @property
    def visible_rows(self) -> list[RenderedRow]:
        return [r for r in self._order if r.index not in self._hidden]

    def is_hidden(self, row: RenderedRow) -> bool:
        return row.index in self._hidden

    def header_states(self) -> list[SortState]:
        return [
            self.sort_direction if i == self.sort_column else "none"
            for i in range(len(self.table.headers))
        ]

    # -- Sort --

    def click_header(self, col_index: int) -> list[SortState]:
        """Handle a header click: toggle that column's sort and reorder rows.

        ``none -> asc -> desc -> asc ...`` on the same header; clicking a
        different header resets every other header to ``none`` and starts
        the new one at ``asc``.  Ignored unless the table is sortable.
        """
        if not self.table.sortable or not 0 <= col_index < self.table.n_columns:
            return self.header_states()
        if col_index == self.sort_column and self.sort_direction == "asc":
            direction: SortState = "desc"
        else:
            direction = "asc"
        self.sort_by(col_index, descending=direction == "desc")
        return self.header_states()

    def sort_by(self, col_index: int, descending: bool = False) -> None:
        """Sort the current row sequence in place by column *col_index*."""
        self._order = sort_rows(self._order, col_index, descending)
        self.sort_column = col_index
        self.sort_direction = "desc" if descending else "asc"

    # -- Search --

    def input(self, query: str, now: float | None = None) -> None:
        """Record a search keystroke; the filter runs once the debounce delay passes.

        A newer input supersedes any pending one.
        """
        now = self._clock() if now is None else now
        self._pending_query = query
        self._deadline = now + self.debounce_secs

    @property
    def pending(self) -> bool:
        return self._pending_query is not None

    def tick(self, now: float | None = None) -> bool:
        """Run the pending filter pass if its delay has elapsed.

        Returns:
            True if a filter pass ran.
        """
        if self._pending_query is None:
            return False
        now = self._clock() if now is None else now
        if now < self._deadline:
            return False
        return self.flush()

    def flush(self) -> bool:
        """Run the pending filter pass immediately."""
        if self._pending_query is None:
            return False
        query, self._pending_query = self._pending_query, None
        self.apply_filter(query)
        return True

    def apply_filter(self, query: str) -> int:
        """Hide rows that do not match *query*; returns the visible count.

        Row order is untouched.  The no-results placeholder is set only for a
        non-empty query with zero matches.
        """
        self.query = query
        mask = match_mask([r.text for r in self._order], query)
        self._hidden = {r.index for r, ok in zip(self._order, mask) if not ok}
        n_visible = len(self._order) - len(self._hidden)
        if n_visible == 0 and query.strip():
            self.no_results = self.table.settings.no_results_text.replace("{query}", query)
        else:
            self.no_results = None
        return n_visible

    def clear_search(self) -> None:
        self._pending_query = None
        self.apply_filter("")

    # -- Output --

    def to_html(self) -> str:
        """Render the table markup in its current sorted/filtered state."""
        return render_markup(
            self.table,
            rows=self._order,
            hidden=self._hidden,
            sort_states=self.header_states(),
            no_results=self.no_results,
            query=self.query,
        )


def apply_view(table: RenderedTable, request: TableViewRequest) -> TableView:
    """Build a view with the sort and search of *request* applied."""
    view = TableView(table)
    if request.sort_column is not None and 0 <= request.sort_column < table.n_columns:
        view.sort_by(request.sort_column, descending=request.descending)
    if request.query:
        view.apply_filter(request.query)
    return view
