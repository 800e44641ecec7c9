from __future__ import annotations

from datetime import datetime, timedelta

from flask import request

from .time_utils import parse_iso_datetime
from .validation import ValidationError, to_int


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_int(name: str) -> int | None:
    return to_int(request.args.get(name), name, required=False)


def query_bool(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes")


def query_datetime(name: str, *, end_of_day: bool = False) -> datetime | None:
    """
    Parse an ISO date/datetime query arg. A bare date used as an upper bound
    covers the whole day (returned value is the next midnight, exclusive).
    """
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")
    if end_of_day and len(raw.strip()) == 10:
        value = value + timedelta(days=1)
    return value


def page_args() -> dict:
    return {"page": query_int("page"), "per_page": query_int("per_page")}
