"""Column key derivation: slugify for imports, suggestions for manual adds."""

from __future__ import annotations

import re
import unicodedata

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

SEPARATOR = "_"


def slugify(text: str, separator: str = SEPARATOR) -> str:
    """Derive a machine-safe key from free text.

    Lowercases, folds accented letters to ASCII, collapses every run of
    non-alphanumeric characters into a single *separator*, and trims
    leading/trailing separators.  Idempotent: ``slugify(slugify(x)) ==
    slugify(x)``.

    Args:
        text: Free-text label.
        separator: Replacement for non-alphanumeric runs.

    Returns:
        The slug, possibly empty.
    """
    folded = unicodedata.normalize("NFKD", text)
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    slug = _NON_ALNUM_RE.sub(separator, folded.lower())
    return slug.strip(separator)


def suggest_key(label: str) -> str:
    """Propose a column key for a manually added column.

    Advisory only: the caller may override the suggestion before adding
    the column, and ``GridModel.add_column`` does no slugification itself.
    """
    return slugify(label.strip())


def positional_key(index: int) -> str:
    """Fallback key for the column at 0-based *index* (``col_1``, ...)."""
    return f"col_{index + 1}"


def derive_keys(labels: list[str]) -> list[str]:
    """Build unique column keys for a list of header labels.

    Empty slugs fall back to the positional key; slugs that collide with an
    earlier key get a numeric suffix (``name``, ``name_2``, ...).
    """
    keys: list[str] = []
    seen: set[str] = set()
    for idx, label in enumerate(labels):
        key = slugify(label) or positional_key(idx)
        if key in seen:
            n = 2
            while f"{key}{SEPARATOR}{n}" in seen:
                n += 1
            key = f"{key}{SEPARATOR}{n}"
        seen.add(key)
        keys.append(key)
    return keys
