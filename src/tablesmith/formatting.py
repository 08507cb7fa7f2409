"""Type-driven display formatting for cell values.

``format_value`` maps a raw string and a column type to a safe HTML fragment
(a :class:`markupsafe.Markup`).  It never raises: a value that does not fit
its declared type is shown as escaped raw text.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from urllib.parse import urlsplit

from markupsafe import Markup, escape

from tablesmith.models import ColumnType
from tablesmith.sanitize import HtmlSanitizer

DEFAULT_CURRENCY_SYMBOL = "$"

# Plain decimal or scientific notation, no symbols or grouping separators.
_NUMERIC_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
_WHITESPACE_RE = re.compile(r"\s")

_default_sanitizer = HtmlSanitizer()


def parse_numeric(value: str) -> Decimal | None:
    """Return *value* as a Decimal if it is a finite plain number, else None.

    Surrounding whitespace is ignored.  Currency symbols, percent signs and
    grouping separators are not accepted.
    """
    text = (value or "").strip()
    if not _NUMERIC_RE.match(text):
        return None
    if not math.isfinite(float(text)):
        return None
    return Decimal(text)


def format_grouped(number: Decimal, places: int) -> str:
    """Format with ``,`` grouping and exactly *places* decimals (half-up)."""
    with localcontext() as ctx:
        ctx.prec = 400
        try:
            rounded = number.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            rounded = number
        if rounded.is_zero():
            rounded = abs(rounded)
        return f"{rounded:,.{places}f}"


def url_host(url: str) -> str:
    """Return the host component of an absolute URL, or ``""``."""
    netloc = urlsplit(url).netloc
    host = netloc.rpartition("@")[2]
    if host.startswith("["):
        return host.split("]", 1)[0] + "]"
    return host.split(":", 1)[0]


def is_absolute_url(value: str, sanitizer: HtmlSanitizer | None = None) -> bool:
    """Return True for a syntactically valid absolute URL with a safe scheme."""
    if not value or _WHITESPACE_RE.search(value):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    if not parts.scheme or not _SCHEME_RE.match(parts.scheme) or not parts.netloc:
        return False
    if not url_host(value):
        return False
    return (sanitizer or _default_sanitizer).url_allowed(value)


def format_value(
    value: str | None,
    col_type: ColumnType | str = ColumnType.text,
    *,
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
    image_class: str = "ts-image",
    sanitizer: HtmlSanitizer | None = None,
) -> Markup:
    """Format a raw cell value for display according to its column type.

    Args:
        value: Raw stored value (``None`` is treated as ``""``).
        col_type: Declared column type; unknown types format as text.
        currency_symbol: Prefix for ``currency`` values.
        image_class: CSS class put on ``<img>`` elements.
        sanitizer: Sanitizer for ``html`` values (host-configured allowlist).

    Returns:
        Safe markup.  Anything that does not match its type is escaped raw text.
    """
    value = "" if value is None else str(value)
    try:
        col_type = ColumnType(col_type)
    except ValueError:
        col_type = ColumnType.text
    sanitizer = sanitizer or _default_sanitizer

    if col_type in (ColumnType.number, ColumnType.currency, ColumnType.percent):
        number = parse_numeric(value)
        if number is None:
            return escape(value)
        if col_type is ColumnType.number:
            return escape(format_grouped(number, 0))
        if col_type is ColumnType.currency:
            return escape(currency_symbol + format_grouped(number, 2))
        return escape(format_grouped(number, 1) + "%")

    if col_type is ColumnType.link:
        if not is_absolute_url(value, sanitizer):
            return escape(value)
        label = url_host(value) or value
        return Markup('<a href="{}" target="_blank" rel="noopener">{}</a>').format(value, label)

    if col_type is ColumnType.image:
        if not is_absolute_url(value, sanitizer):
            return escape(value)
        return Markup('<img src="{}" alt="" class="{}">').format(value, image_class)

    if col_type is ColumnType.html:
        return sanitizer.clean(value)

    return escape(value)
