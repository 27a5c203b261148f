"""
Instant helpers.

All in-memory instants are naive local datetimes; the wire format is ISO-8601.
Aware values (e.g. "2024-05-01T08:00:00Z" written by another client) are
converted to local time on the way in.
"""

from __future__ import annotations

from datetime import datetime


def now() -> datetime:
    """Current local time."""
    return datetime.now()


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant into a naive local datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def format_instant(value: datetime) -> str:
    """Serialize an instant for storage."""
    return value.isoformat()
