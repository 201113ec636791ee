"""Request payload and query-string parsing helpers."""
from __future__ import annotations

from datetime import date, datetime, time

from flask import request

from .errors import ValidationError


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def parse_datetime(value: object, field: str) -> datetime:
    """Parse a local wall-clock ISO datetime; any UTC offset is dropped, not converted."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} must be a valid ISO format datetime")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be a valid ISO format datetime")
    return parsed.replace(tzinfo=None)


def parse_date(value: object, field: str) -> date:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be in YYYY-MM-DD format")


def parse_time(value: object, field: str) -> time:
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} must be in HH:MM format")
    try:
        return time.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be in HH:MM format")


def parse_int(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes"}


def pagination_args(default_limit: int = 10, max_limit: int = 100) -> tuple[int, int]:
    try:
        page = max(1, int(request.args.get("page", 1)))
        limit = min(max_limit, max(1, int(request.args.get("limit", default_limit))))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    return page, limit


def pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }


def recurrence_args(payload: dict) -> dict | None:
    recurrence = payload.get("recurrence")
    if recurrence is None:
        return None
    if not isinstance(recurrence, dict):
        raise ValidationError("recurrence must be an object")
    parsed = {
        "type": recurrence.get("type", "none"),
        "occurrences": parse_int(recurrence.get("occurrences", 1), "recurrence.occurrences"),
    }
    if recurrence.get("end_date"):
        parsed["end_date"] = parse_date(recurrence["end_date"], "recurrence.end_date")
    return parsed
