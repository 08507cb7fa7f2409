"""Render engine: project (columns, rows, options) onto a styled HTML table.

``render_table`` is a pure projection.  It returns a :class:`RenderedTable`
holding per-cell markup and visible text; ``RenderedTable.to_html()`` turns
that into markup with a Jinja2 template.  Rendering never raises: missing
values render as empty cells and mistyped values fall back to escaped text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from jinja2 import Environment
from markupsafe import Markup

from tablesmith.formatting import format_value
from tablesmith.models import Column, DisplayOptions
from tablesmith.project import DEFAULT_CONFIG, build_sanitizer
from tablesmith.sanitize import HtmlSanitizer, sanitize_html_class, visible_text


@dataclass(frozen=True)
class RenderSettings:
    """Host-level rendering settings taken from project config."""

    class_prefix: str = "ts"
    currency_symbol: str = "$"
    search_placeholder: str = "Search table..."
    no_results_text: str = 'No results found for "{query}"'
    search_debounce_ms: int = 200
    sanitizer: HtmlSanitizer = field(default_factory=HtmlSanitizer)

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> RenderSettings:
        cfg = {**DEFAULT_CONFIG, **(config or {})}
        return cls(
            class_prefix=sanitize_html_class(str(cfg["class_prefix"])) or "ts",
            currency_symbol=str(cfg["currency_symbol"]),
            search_placeholder=str(cfg["search_placeholder"]),
            no_results_text=str(cfg["no_results_text"]),
            search_debounce_ms=int(cfg["search_debounce_ms"]),
            sanitizer=build_sanitizer(cfg),
        )


@dataclass(frozen=True)
class RenderedHeader:
    key: str
    label: str
    align_class: str
    style: str = ""


@dataclass(frozen=True)
class RenderedCell:
    html: Markup
    text: str
    align_class: str


@dataclass(frozen=True)
class RenderedRow:
    """One rendered data row.  ``index`` is its position in the source rows."""

    index: int
    cells: tuple[RenderedCell, ...]

    @property
    def text(self) -> str:
        """Concatenated visible text of all cells."""
        return "".join(c.text for c in self.cells)


@dataclass(frozen=True)
class RenderedTable:
    """Static table structure produced by :func:`render_table`."""

    classes: tuple[str, ...]
    headers: tuple[RenderedHeader, ...]
    rows: tuple[RenderedRow, ...]
    n_columns: int
    table_id: str | None = None
    responsive: bool = False
    searchable: bool = False
    sortable: bool = False
    settings: RenderSettings = field(default_factory=RenderSettings)

    @property
    def empty_schema(self) -> bool:
        return self.n_columns == 0

    def to_html(self) -> str:
        """Render the static markup (no sort or filter applied)."""
        return render_markup(self)


_TEMPLATE = """\
{%- set p = t.settings.class_prefix -%}
{%- if t.responsive %}<div class="{{ p }}-responsive-wrapper">{% endif -%}
{%- if t.searchable %}<div class="{{ p }}-search-wrapper"><input type="text" class="{{ p }}-search" placeholder="{{ t.settings.search_placeholder }}"{% if query %} value="{{ query }}"{% endif %}></div>{% endif -%}
<table class="{{ t.classes|join(' ') }}"{% if t.table_id %} data-table-id="{{ t.table_id }}"{% endif %}>
{%- if t.headers %}<thead><tr>
{%- for h in t.headers %}<th class="{{ h.align_class }}{% if sort_states[loop.index0] != 'none' %} sort-{{ sort_states[loop.index0] }}{% endif %}"{% if h.style %} style="{{ h.style }}"{% endif %} data-col="{{ h.key }}">{{ h.label }}{% if t.sortable %}<span class="{{ p }}-sort-icon"></span>{% endif %}</th>
{%- endfor %}</tr></thead>{% endif -%}
<tbody>
{%- for row, hidden in rows %}<tr{% if hidden %} style="display: none"{% endif %}>
{%- for cell in row.cells %}<td class="{{ cell.align_class }}">{{ cell.html }}</td>{% endfor %}</tr>
{%- endfor %}
{%- if no_results is not none %}<tr class="{{ p }}-no-results-row"><td colspan="{{ t.n_columns }}" class="{{ p }}-no-results">{{ no_results }}</td></tr>{% endif -%}
</tbody></table>
{%- if t.responsive %}</div>{% endif -%}
"""

_env = Environment(autoescape=True)
_template = _env.from_string(_TEMPLATE)


def render_markup(
    table: RenderedTable,
    rows: Sequence[RenderedRow] | None = None,
    hidden: Iterable[int] = (),
    sort_states: Sequence[str] | None = None,
    no_results: str | None = None,
    query: str = "",
) -> str:
    """Render *table* markup, optionally in a live interaction state.

    Args:
        table: Rendered structure.
        rows: Row order to emit (defaults to the rendered order).
        hidden: Source indices of rows emitted hidden.
        sort_states: Per-header indicator (``none``/``asc``/``desc``).
        no_results: Placeholder message; adds the no-results row when set.
        query: Current search query echoed into the search input.
    """
    if table.empty_schema:
        return "<!-- tablesmith: No columns defined -->"
    hidden_set = set(hidden)
    ordered = table.rows if rows is None else rows
    states = list(sort_states) if sort_states is not None else ["none"] * len(table.headers)
    return _template.render(
        t=table,
        rows=[(r, r.index in hidden_set) for r in ordered],
        sort_states=states,
        no_results=no_results,
        query=query,
    )


def compose_classes(
    options: DisplayOptions,
    extra_class: str = "",
    prefix: str = "ts",
) -> tuple[str, ...]:
    """Build the table-level CSS class list."""
    classes = [f"{prefix}-table"]
    if options.striped:
        classes.append(f"{prefix}-striped")
    if options.hover:
        classes.append(f"{prefix}-hover")
    if options.sortable:
        classes.append(f"{prefix}-sortable")
    if options.searchable:
        classes.append(f"{prefix}-searchable")
    for raw in (options.custom_class, extra_class):
        cleaned = sanitize_html_class(raw)
        if cleaned:
            classes.append(cleaned)
    return tuple(classes)


def render_table(
    columns: Sequence[Column],
    rows: Iterable[Mapping[str, str]],
    options: DisplayOptions | None = None,
    *,
    table_id: str | None = None,
    extra_class: str = "",
    settings: RenderSettings | None = None,
) -> RenderedTable:
    """Project a schema and rows onto a rendered table structure.

    Args:
        columns: Column schema, in display order.
        rows: Raw rows; missing keys render as empty cells, extra keys are ignored.
        options: Display flags (defaults apply when None).
        table_id: Identifier echoed as ``data-table-id``.
        extra_class: Caller-supplied class (e.g. from the render directive).
        settings: Host rendering settings.

    Returns:
        RenderedTable.  Inputs are not mutated.
    """
    options = options or DisplayOptions()
    settings = settings or RenderSettings()
    prefix = settings.class_prefix

    align = {c.key: f"{prefix}-align-{c.align.value}" for c in columns}
    headers: tuple[RenderedHeader, ...] = ()
    if options.has_header:
        headers = tuple(
            RenderedHeader(
                key=c.key,
                label=c.label,
                align_class=align[c.key],
                style=f"width: {c.width};" if c.width else "",
            )
            for c in columns
        )

    rendered_rows = []
    for idx, row in enumerate(rows):
        cells = []
        for col in columns:
            html = format_value(
                row.get(col.key, ""),
                col.type,
                currency_symbol=settings.currency_symbol,
                image_class=f"{prefix}-image",
                sanitizer=settings.sanitizer,
            )
            cells.append(RenderedCell(html=html, text=visible_text(html).strip(), align_class=align[col.key]))
        rendered_rows.append(RenderedRow(index=idx, cells=tuple(cells)))

    return RenderedTable(
        classes=compose_classes(options, extra_class, prefix),
        headers=headers,
        rows=tuple(rendered_rows),
        n_columns=len(columns),
        table_id=table_id,
        responsive=options.responsive,
        searchable=options.searchable,
        sortable=options.sortable,
        settings=settings,
    )
