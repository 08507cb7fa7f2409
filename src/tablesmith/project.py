"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from tablesmith.sanitize import (
    DEFAULT_ALLOWED_ATTRIBUTES,
    DEFAULT_ALLOWED_TAGS,
    DEFAULT_URL_SCHEMES,
    HtmlSanitizer,
)

CONFIG_FILENAME = "tablesmith.yaml"

DEFAULT_CONFIG = {
    "currency_symbol": "$",
    "class_prefix": "ts",
    "search_debounce_ms": 200,
    "search_placeholder": "Search table...",
    "no_results_text": 'No results found for "{query}"',
    "html_allowed_tags": None,  # default: sanitize.DEFAULT_ALLOWED_TAGS
    "html_allowed_attributes": None,  # default: sanitize.DEFAULT_ALLOWED_ATTRIBUTES
    "url_schemes": None,  # default: sanitize.DEFAULT_URL_SCHEMES
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEMO_CONFIG = """\
# tablesmith project configuration
currency_symbol: "$"
class_prefix: ts
search_debounce_ms: 200
# html_allowed_tags: [a, b, strong, em, br, span]
# html_allowed_attributes:
#   "*": [class, title]
#   a: [href, target, rel]
"""

DEMO_TABLE = """\
table_id: demo
title: Demo pricing
columns:
  - {key: plan, label: Plan, type: text, align: left, width: ""}
  - {key: price, label: Monthly price, type: currency, align: right, width: 8em}
  - {key: discount, label: Annual discount, type: percent, align: right, width: ""}
  - {key: seats, label: Seats, type: number, align: center, width: ""}
  - {key: docs, label: Docs, type: link, align: left, width: ""}
rows:
  - {plan: Starter, price: "9", discount: "0", seats: "1", docs: "https://example.com/starter"}
  - {plan: Team, price: "49.5", discount: "10", seats: "25", docs: "https://example.com/team"}
  - {plan: Enterprise, price: "1299", discount: "17.5", seats: "1000", docs: "https://example.com/enterprise"}
options:
  has_header: true
  striped: true
  hover: true
  responsive: true
  sortable: true
  searchable: true
  custom_class: ""
"""


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``tablesmith.yaml``, with defaults.

    Args:
        project_dir: Root of the tablesmith project.

    Returns:
        Merged configuration dict.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = Path(project_dir) / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{CONFIG_FILENAME} must contain a mapping")
        config.update(user_config)
    return config


def build_sanitizer(config: dict[str, Any]) -> HtmlSanitizer:
    """Create the host-configured HTML sanitizer for ``html`` columns."""
    return HtmlSanitizer(
        allowed_tags=config.get("html_allowed_tags") or DEFAULT_ALLOWED_TAGS,
        allowed_attributes=config.get("html_allowed_attributes") or DEFAULT_ALLOWED_ATTRIBUTES,
        url_schemes=config.get("url_schemes") or DEFAULT_URL_SCHEMES,
    )


def scaffold_project(target_dir: Path) -> Path:
    """Create a new tablesmith project with a demo table.

    Args:
        target_dir: Directory to create (must not already contain a config).

    Returns:
        Path to the created project directory.
    """
    target_dir = Path(target_dir).resolve()
    target_dir.mkdir(parents=True, exist_ok=True)

    if (target_dir / CONFIG_FILENAME).exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")

    (target_dir / CONFIG_FILENAME).write_text(DEMO_CONFIG)

    tables_dir = target_dir / "tables"
    tables_dir.mkdir(exist_ok=True)
    (tables_dir / "demo.yaml").write_text(DEMO_TABLE)

    (target_dir / "logs").mkdir(exist_ok=True)

    return target_dir
