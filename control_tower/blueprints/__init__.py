"""
Blueprint helpers shared by the API modules.

The cache store lives on ``app.extensions["cache_store"]``; the HTTP layer
is the only place that reads the wall clock.
"""

from datetime import datetime, timezone

from flask import current_app, request

from control_tower.core.exceptions import ValidationError
from control_tower.utils.helpers import normalize_iso, to_iso


def get_store():
    return current_app.extensions["cache_store"]


def request_now_iso(data: dict | None = None) -> str:
    """``now_iso`` from the body or query string, else the current UTC time."""
    wall_clock = to_iso(datetime.now(timezone.utc))
    candidate = (data or {}).get("now_iso") or request.args.get("now_iso")
    return normalize_iso(candidate, wall_clock) if candidate else wall_clock


def get_json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_list(data: dict, key: str) -> list:
    value = data.get(key, [])
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list", details={key: "expected list"})
    return value
