"""Content hashing for table definitions."""

from __future__ import annotations

import hashlib
import json
from typing import Any

_HASHED_FIELDS = ("title", "columns", "rows", "options")


def _canonical(obj: Any) -> Any:
    # YAML can load non-string keys (e.g. a column key ``1``); JSON needs strings.
    if isinstance(obj, dict):
        return {str(k): _canonical(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_canonical(item) for item in obj]
    return obj


def table_content_hash(payload: dict[str, Any]) -> str:
    """SHA-256 of a table's persisted content (title, columns, rows, options).

    Column and row order are significant; key order within a row or an
    options mapping is not.  Any other top-level fields are ignored.
    """
    content = {k: payload.get(k) for k in _HASHED_FIELDS}
    blob = json.dumps(_canonical(content), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()
