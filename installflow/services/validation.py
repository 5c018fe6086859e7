"""Input validation shared by the scheduling services."""

from __future__ import annotations

from datetime import date, datetime

from ulid import ULID

from installflow.errors import InvalidInputError


def require_id(value: str | None, field: str) -> str:
    """Return value if it is a well-formed ULID, else raise InvalidInputError."""
    if not value:
        raise InvalidInputError(f"Missing required parameter: {field}", field=field)
    try:
        ULID.from_str(value)
    except (ValueError, TypeError):
        raise InvalidInputError(f"Invalid identifier format for {field}", field=field, value=value)
    return value


def require_date(value: date | datetime | str | None, field: str) -> date:
    if value is None or value == "":
        raise InvalidInputError(f"Missing required parameter: {field}", field=field)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    try:
        # Full ISO datetimes keep only their date part
        if len(text) > 10 and text[10] in "T ":
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise InvalidInputError(f"Invalid date for {field}: {value}", field=field, value=value)

