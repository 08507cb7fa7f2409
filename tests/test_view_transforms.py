"""Tests for live sort/search over rendered tables."""

from __future__ import annotations

import pytest

from tablesmith.models import Column, ColumnType, DisplayOptions
from tablesmith.render import render_table
from tablesmith.ui.view_transforms import (
    TableView,
    TableViewRequest,
    apply_view,
    match_mask,
    numeric_keys,
    sort_rows,
)


# ────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _rendered(values: list[str], col_type: ColumnType = ColumnType.text, sortable: bool = True):
    columns = [Column(key="v", label="Value", type=col_type)]
    rows = [{"v": v} for v in values]
    return render_table(columns, rows, DisplayOptions(sortable=sortable, searchable=True))


@pytest.fixture
def people():
    columns = [
        Column(key="name", label="Name"),
        Column(key="city", label="City"),
        Column(key="age", label="Age", type=ColumnType.number),
    ]
    rows = [
        {"name": "Alice", "city": "NYC", "age": "30"},
        {"name": "Bob", "city": "LA", "age": "25"},
        {"name": "Charlie", "city": "NYC", "age": "35"},
        {"name": "Diana", "city": "LA", "age": "28"},
        {"name": "Eve", "city": "Chicago", "age": "32"},
    ]
    return render_table(columns, rows, DisplayOptions(sortable=True, searchable=True))


def _names(rows) -> list[str]:
    """Visible text of the first cell of each row."""
    return [r.cells[0].text for r in rows]


# ────────────────────────────────────────────────────────────────
# Pure helpers
# ────────────────────────────────────────────────────────────────


class TestNumericKeys:
    def test_strips_currency_grouping_percent(self) -> None:
        assert numeric_keys(["$1,234.50", "€5", "£ 7", "¥9", "12.5%"]) == [1234.5, 5.0, 7.0, 9.0, 12.5]

    def test_non_numeric_is_none(self) -> None:
        assert numeric_keys(["abc", "", "1-2"]) == [None, None, None]

    def test_empty_input(self) -> None:
        assert numeric_keys([]) == []


class TestMatchMask:
    def test_all_terms_required(self) -> None:
        assert match_mask(["foo bar", "foo", "bar"], "foo bar") == [True, False, False]

    def test_case_insensitive_substring(self) -> None:
        assert match_mask(["Hello World"], "WORLD") == [True]

    def test_empty_query_matches_everything(self) -> None:
        assert match_mask(["a", "b"], "   ") == [True, True]

    def test_terms_may_match_across_cells(self) -> None:
        # Row text is the concatenation of cell texts.
        assert match_mask(["AliceNYC30"], "alice nyc") == [True]


# ────────────────────────────────────────────────────────────────
# Sort
# ────────────────────────────────────────────────────────────────


class TestSort:
    def test_currency_sorts_numerically(self) -> None:
        table = _rendered(["10", "2", "100"], ColumnType.currency)
        assert _names(sort_rows(table.rows, 0)) == ["$2.00", "$10.00", "$100.00"]

    def test_currency_text_column_sorts_numerically(self) -> None:
        table = _rendered(["$10", "$2", "$100"])
        assert _names(sort_rows(table.rows, 0)) == ["$2", "$10", "$100"]

    def test_descending(self) -> None:
        table = _rendered(["$10", "$2", "$100"])
        assert _names(sort_rows(table.rows, 0, descending=True)) == ["$100", "$10", "$2"]

    def test_text_case_insensitive(self) -> None:
        table = _rendered(["banana", "Apple", "cherry"])
        assert _names(sort_rows(table.rows, 0)) == ["Apple", "banana", "cherry"]

    def test_accented_text_sorts_with_base_letter(self) -> None:
        table = _rendered(["zebra", "éclair", "apple", "Émile", "eagle"])
        assert _names(sort_rows(table.rows, 0)) == ["apple", "eagle", "éclair", "Émile", "zebra"]

    def test_accented_header_click(self) -> None:
        view = TableView(_rendered(["zebra", "éclair", "apple"]))
        view.click_header(0)
        assert _names(view.rows) == ["apple", "éclair", "zebra"]

    def test_stable_ties_ascending_and_descending(self, people) -> None:
        asc = sort_rows(people.rows, 1)
        assert _names(asc) == ["Eve", "Bob", "Diana", "Alice", "Charlie"]
        desc = sort_rows(people.rows, 1, descending=True)
        assert _names(desc) == ["Alice", "Charlie", "Bob", "Diana", "Eve"]

    def test_sort_does_not_mutate_rendered(self, people) -> None:
        before = _names(people.rows)
        sort_rows(people.rows, 2)
        assert _names(people.rows) == before


class TestClickHeader:
    def test_tri_state_cycle(self, people) -> None:
        view = TableView(people)
        assert view.header_states() == ["none", "none", "none"]

        assert view.click_header(2) == ["none", "none", "asc"]
        assert _names(view.rows) == ["Bob", "Diana", "Alice", "Eve", "Charlie"]

        assert view.click_header(2) == ["none", "none", "desc"]
        assert _names(view.rows) == ["Charlie", "Eve", "Alice", "Diana", "Bob"]

        assert view.click_header(2) == ["none", "none", "asc"]

    def test_other_header_resets(self, people) -> None:
        view = TableView(people)
        view.click_header(2)
        view.click_header(2)
        assert view.click_header(0) == ["asc", "none", "none"]

    def test_ignored_when_not_sortable(self) -> None:
        table = _rendered(["b", "a"], sortable=False)
        view = TableView(table)
        assert view.click_header(0) == ["none"]
        assert _names(view.rows) == ["b", "a"]

    def test_out_of_range_header_ignored(self, people) -> None:
        view = TableView(people)
        assert view.click_header(7) == ["none", "none", "none"]

    def test_markup_carries_sort_class(self, people) -> None:
        view = TableView(people)
        view.click_header(0)
        assert 'class="ts-align-left sort-asc"' in view.to_html()


# ────────────────────────────────────────────────────────────────
# Search
# ────────────────────────────────────────────────────────────────


class TestSearch:
    def test_filter_hides_not_removes(self, people) -> None:
        view = TableView(people)
        assert view.apply_filter("nyc") == 2
        assert _names(view.visible_rows) == ["Alice", "Charlie"]
        assert len(view.rows) == 5
        assert view.to_html().count('style="display: none"') == 3

    def test_filter_keeps_order(self, people) -> None:
        view = TableView(people)
        view.click_header(2)
        view.apply_filter("la")
        assert _names(view.visible_rows) == ["Bob", "Diana"]
        assert _names(view.rows) == ["Bob", "Diana", "Alice", "Eve", "Charlie"]

    def test_no_results_placeholder(self, people) -> None:
        view = TableView(people)
        assert view.apply_filter("zzz") == 0
        assert view.no_results == 'No results found for "zzz"'
        html = view.to_html()
        assert 'colspan="3"' in html
        assert "No results found for &#34;zzz&#34;" in html

    def test_clearing_restores_rows_and_removes_placeholder(self, people) -> None:
        view = TableView(people)
        view.apply_filter("zzz")
        view.clear_search()
        assert len(view.visible_rows) == 5
        assert view.no_results is None
        assert "no-results" not in view.to_html()

    def test_placeholder_removed_once_something_matches(self, people) -> None:
        view = TableView(people)
        view.apply_filter("zzz")
        view.apply_filter("eve")
        assert view.no_results is None
        assert _names(view.visible_rows) == ["Eve"]

    def test_query_text_escaped(self, people) -> None:
        view = TableView(people)
        view.apply_filter("<b>")
        assert "<b>" not in view.to_html()


class TestDebounce:
    def test_filter_runs_after_delay(self, people) -> None:
        clock = FakeClock()
        view = TableView(people, clock=clock)
        view.input("nyc")
        assert view.pending
        assert not view.tick()
        assert len(view.visible_rows) == 5

        clock.now += 0.2
        assert view.tick()
        assert not view.pending
        assert len(view.visible_rows) == 2

    def test_later_input_supersedes(self, people) -> None:
        clock = FakeClock()
        view = TableView(people, clock=clock)
        view.input("nyc")
        clock.now += 0.15
        view.input("la")
        clock.now += 0.1
        assert not view.tick()
        clock.now += 0.5
        assert view.tick()
        assert _names(view.visible_rows) == ["Bob", "Diana"]

    def test_explicit_now(self, people) -> None:
        view = TableView(people, debounce_secs=0.5)
        view.input("eve", now=10.0)
        assert not view.tick(now=10.4)
        assert view.tick(now=10.5)

    def test_delay_from_settings(self) -> None:
        from tablesmith.render import RenderSettings

        settings = RenderSettings.from_config({"search_debounce_ms": 1000})
        table = render_table([Column(key="v")], [{"v": "a"}], settings=settings)
        assert TableView(table).debounce_secs == 1.0

    def test_flush(self, people) -> None:
        view = TableView(people)
        assert not view.flush()
        view.input("bob")
        assert view.flush()
        assert _names(view.visible_rows) == ["Bob"]


# ────────────────────────────────────────────────────────────────
# Request model
# ────────────────────────────────────────────────────────────────


class TestApplyView:
    def test_sort_and_query(self, people) -> None:
        view = apply_view(people, TableViewRequest(sort_column=2, descending=True, query="nyc"))
        assert _names(view.visible_rows) == ["Charlie", "Alice"]
        assert view.header_states() == ["none", "none", "desc"]

    def test_invalid_sort_column_ignored(self, people) -> None:
        view = apply_view(people, TableViewRequest(sort_column=9))
        assert _names(view.rows) == _names(people.rows)
