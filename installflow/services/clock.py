"""Injectable time and token sources."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]
TokenFactory = Callable[[], str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_client_token() -> str:
    """Unguessable URL-safe token for public offer links."""
    return secrets.token_urlsafe(48)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value
