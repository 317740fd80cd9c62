"""
Timestamp helpers.

All timestamps inside legisync are naive UTC datetimes, matching the
columns in the store. Source timestamps arrive as ISO 8601 strings
(often with a trailing ``Z``) and are converted here.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Best-effort conversion of a source value to a naive UTC ``datetime``.

    Accepts datetimes, dates, ISO 8601 strings and epoch milliseconds.
    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = datetime.strptime(text[:10], "%Y-%m-%d")
            except ValueError:
                logger.debug("Unable to parse timestamp %r", value)
                return None
        return parse_timestamp(parsed)
    return None


def whole_months_between(start: datetime, end: datetime) -> int:
    """Number of complete calendar months from ``start`` to ``end`` (never negative)."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)
