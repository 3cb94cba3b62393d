"""Balizas V16 — Timestamp helpers.

All timestamps are stored as naive UTC so that PostgreSQL ``TIMESTAMP``
columns and SQLite text columns compare the same way.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Current time in UTC as a naive datetime (DB storage form)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC. Naive input is assumed UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 string / datetime / epoch-millis into naive UTC.

    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(
                tzinfo=None
            )
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored (naive UTC) timestamp as ISO 8601 with a Z suffix."""
    if dt is None:
        return None
    return to_naive_utc(dt).isoformat(timespec="milliseconds") + "Z"
