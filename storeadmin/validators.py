"""Request body parsing helpers that raise ``BadRequest`` on invalid input."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import request

from .errors import BadRequest

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def json_body() -> dict:
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        raise BadRequest("Request body must be a JSON object")
    return payload


def required_str(payload: dict, key: str, label: str | None = None) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise BadRequest(f"{label or key} is required")
    return value.strip()


def optional_str(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequest(f"{key} must be a string")
    return value.strip() or None


def email(payload: dict, key: str = "email") -> str:
    value = required_str(payload, key).lower()
    if not EMAIL_RE.match(value):
        raise BadRequest("Invalid email address")
    return value


def integer(value, label: str, minimum: int | None = None, maximum: int | None = None) -> int:
    if isinstance(value, bool):
        raise BadRequest(f"{label} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise BadRequest(f"{label} must be an integer") from exc
    if isinstance(value, float) and value != number:
        raise BadRequest(f"{label} must be an integer")
    if minimum is not None and number < minimum:
        raise BadRequest(f"{label} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise BadRequest(f"{label} must be at most {maximum}")
    return number


def money(value, label: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise BadRequest(f"{label} must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise BadRequest(f"{label} must be a number") from exc
    if not amount.is_finite():
        raise BadRequest(f"{label} must be a number")
    if amount < 0:
        raise BadRequest(f"{label} must not be negative")
    return amount.quantize(Decimal("0.01"))


def choice(value, label: str, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        raise BadRequest(f"{label} must be one of: {', '.join(allowed)}")
    return value


def timestamp(value, label: str) -> datetime | None:
    """Parse an ISO-8601 date or datetime; empty values mean "not set"."""
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise BadRequest(f"{label} must be an ISO-8601 date")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise BadRequest(f"{label} must be an ISO-8601 date") from exc
    # Stored naive in UTC.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
