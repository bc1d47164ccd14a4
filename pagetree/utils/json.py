"""JSON column helpers for properties, assignees, block metadata and payloads.

SQLite stores these as TEXT; rows read back hand them to these functions
before building response models.
"""

import json
from typing import Any


def parse_json_object(raw: str | dict | None) -> dict[str, Any]:
    """Parse a JSON object column, returning {} for None, empty, invalid or non-dict."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw:
        try:
            parsed = json.loads(raw)
        except (ValueError, TypeError):
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def parse_json_list(raw: str | list | None) -> list[Any]:
    """Parse a JSON array column, returning [] for None, empty, invalid or non-list."""
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and raw:
        try:
            parsed = json.loads(raw)
        except (ValueError, TypeError):
            return []
        if isinstance(parsed, list):
            return parsed
    return []


def dump_json(value: dict | list | None, default: str = "{}") -> str:
    """Serialize a column value; None becomes ``default``."""
    if value is None:
        return default
    return json.dumps(value)
